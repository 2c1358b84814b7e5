"""Kustomization image tag updates.

The ``images:`` entry whose ``name`` matches the service registry gets its
``newTag`` rewritten in place. The file is edited line by line so comments,
key order and block scalars (``patch: |``) survive untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from forge.core.result import Err, Ok, Result
from forge.platform.files import atomic_write_text

__all__ = ["ManifestError", "TagUpdate", "update_image_tag", "update_kustomization"]


@dataclass(frozen=True, slots=True)
class ManifestError:
    path: Path
    message: str


@dataclass(frozen=True, slots=True)
class TagUpdate:
    old_tag: str
    new_tag: str

    @property
    def changed(self) -> bool:
        return self.old_tag != self.new_tag


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _matches(name: str, registry: str) -> bool:
    image_name = registry.rstrip("/").rsplit("/", 1)[-1]
    return name in registry or image_name in name


def update_image_tag(content: str, registry: str, new_tag: str) -> tuple[str, TagUpdate] | None:
    """Rewrite the ``newTag`` following the matching ``- name:`` line.

    Returns the new content and the tag change, or ``None`` if no image entry
    matches ``registry``.
    """
    out: list[str] = []
    in_match = False
    update: TagUpdate | None = None

    for line in content.splitlines():
        stripped = line.strip()
        if in_match:
            if stripped.startswith("newTag:"):
                indent = line[: len(line) - len(line.lstrip())]
                update = TagUpdate(
                    old_tag=_unquote(stripped.removeprefix("newTag:")), new_tag=new_tag
                )
                out.append(f"{indent}newTag: {new_tag}")
                in_match = False
                continue
            if stripped.startswith("- ") or (stripped and not line[0].isspace()):
                in_match = False

        if update is None and stripped.startswith("- name:"):
            name = _unquote(stripped.removeprefix("- name:"))
            in_match = bool(name) and _matches(name, registry)

        out.append(line)

    if update is None:
        return None

    text = "\n".join(out)
    if content.endswith("\n"):
        text += "\n"
    return text, update


def update_kustomization(
    path: Path, registry: str, new_tag: str
) -> Result[TagUpdate, ManifestError]:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(ManifestError(path, "kustomization file not found"))
    except OSError as e:
        return Err(ManifestError(path, f"failed to read kustomization: {e}"))

    updated = update_image_tag(content, registry, new_tag)
    if updated is None:
        return Err(ManifestError(path, f"no image entry matching {registry}"))

    text, change = updated
    if change.changed:
        try:
            atomic_write_text(path, text, encoding="utf-8")
        except OSError as e:
            return Err(ManifestError(path, f"failed to write kustomization: {e}"))
    return Ok(change)
