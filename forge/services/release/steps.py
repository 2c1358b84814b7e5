"""Default handlers for each release step.

Handlers close over a ``ReleaseContext`` (repository, configuration and the
external clients) and receive the immutable ``ReleaseConfig`` of the run. A
handler returns ``Ok(message)`` on success and ``Err(ReleaseError)`` on
failure; the pipeline driver decides what happens next.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from forge.cluster.client import ClusterClient
from forge.core.config import ForgeConfig, ServiceConfig
from forge.core.repo import RepoRoot
from forge.core.result import Err, Ok, Result
from forge.git.repository import VCSClient
from forge.output.console import ConsoleProtocol, Style
from forge.platform.process import run as run_process
from forge.registry.client import RegistryClient
from forge.registry.errors import (
    ArtifactMissing,
    CredentialsNotFound,
    InvalidRegistry,
    RegistryError,
)
from forge.registry.errors import describe as describe_registry_error
from forge.services import flux
from forge.services.artifacts import ArtifactStore
from forge.services.manifest import update_kustomization
from forge.services.migration import MigrationJobRunner, MigrationSpec
from forge.services.rollout import RolloutMonitor, RolloutSettings

from .errors import ReleaseError
from .machine import StepHandler
from .model import DEFAULT_STEPS, ReleaseConfig, ReleaseStep

__all__ = [
    "RegistryFactory",
    "ReleaseContext",
    "build_step_handlers",
    "deploy_commit_message",
    "release_config_for",
]

RegistryFactory = Callable[[], Result[RegistryClient, RegistryError]]


@dataclass(frozen=True, slots=True)
class ReleaseContext:
    repo: RepoRoot
    config: ForgeConfig
    service: ServiceConfig
    console: ConsoleProtocol
    cluster: ClusterClient
    vcs: VCSClient
    store: ArtifactStore
    # Credentials are only discovered when a step actually talks to the registry.
    registry: RegistryFactory
    rollout: RolloutSettings = field(default_factory=RolloutSettings)

    @property
    def service_dir(self) -> Path:
        return self.repo.resolve(self.service.path)


def deploy_commit_message(service: str, tag: str) -> str:
    return f"deploy: update {service} to {tag}"


def release_config_for(
    ctx: ReleaseContext,
    environment: str,
    *,
    steps: tuple[ReleaseStep, ...] = DEFAULT_STEPS,
    git_sha: str = "",
    explicit_tag: str | None = None,
    step_timeout_seconds: int | None = None,
    watch_rollout: bool = True,
    safe_mode: bool = False,
) -> ReleaseConfig:
    """Resolve the configuration of one service's release into one environment."""
    product = ctx.config.product
    svc = ctx.service
    return ReleaseConfig(
        service=svc.name,
        product=product.name,
        namespace=product.namespace_for(environment),
        environment=environment,
        registry=svc.registry,
        manifest_path=svc.manifest_for(environment) or "",
        artifact_path=str(ctx.service_dir / svc.image),
        git_sha=git_sha,
        arch=ctx.config.release.arch,
        explicit_tag=explicit_tag,
        steps=steps,
        step_timeout_seconds=step_timeout_seconds or ctx.config.release.step_timeout_seconds,
        watch_rollout=watch_rollout,
        safe_mode=safe_mode or ctx.config.rollout.safe_mode,
    )


def build_step_handlers(ctx: ReleaseContext) -> dict[ReleaseStep, StepHandler]:
    return {
        ReleaseStep.BUILD: lambda cfg: _build(ctx, cfg),
        ReleaseStep.PUSH: lambda cfg: _push(ctx, cfg),
        ReleaseStep.DEPLOY: lambda cfg: _deploy(ctx, cfg),
        ReleaseStep.RECONCILE: lambda cfg: _reconcile(ctx, cfg),
        ReleaseStep.MIGRATE: lambda cfg: _migrate(ctx, cfg),
        ReleaseStep.EXTRACT_SCHEMA: lambda cfg: _hook(
            ctx, cfg, "extract_schema", ctx.service.hooks.extract_schema
        ),
        ReleaseStep.UPDATE_FEDERATION: lambda cfg: _hook(
            ctx, cfg, "update_federation", ctx.service.hooks.update_federation
        ),
        ReleaseStep.INTEGRATION_TESTS: lambda cfg: _hook(
            ctx, cfg, "integration_tests", ctx.service.hooks.integration_tests
        ),
        ReleaseStep.ROLLOUT: lambda cfg: _rollout(ctx, cfg),
    }


def _require_tag(cfg: ReleaseConfig) -> Result[str, ReleaseError]:
    tag = cfg.image_tag
    if tag is None:
        return Err(ReleaseError(kind="invalid_config", message="no image tag for this release"))
    return Ok(tag)


def _hook_env(cfg: ReleaseConfig) -> dict[str, str]:
    env = dict(os.environ)
    env.update(
        {
            "FORGE_PRODUCT": cfg.product,
            "FORGE_SERVICE": cfg.service,
            "FORGE_ENVIRONMENT": cfg.environment,
            "FORGE_NAMESPACE": cfg.namespace,
            "FORGE_IMAGE_TAG": cfg.image_tag or "",
            "FORGE_ARTIFACT": cfg.artifact_path,
        }
    )
    return env


def _run_hook(
    ctx: ReleaseContext, cfg: ReleaseConfig, name: str, argv: tuple[str, ...]
) -> Result[None, ReleaseError]:
    ctx.console.print(" ".join(argv), Style.DIM)
    result = run_process(
        list(argv),
        cwd=ctx.service_dir,
        env=_hook_env(cfg),
        timeout=cfg.step_timeout_seconds,
    )
    if isinstance(result, Err):
        e = result.error
        return Err(
            ReleaseError(
                kind="hook_failed",
                message=f"{name} hook failed (exit {e.returncode})",
                hint=e.detail.splitlines()[-1] if e.detail else None,
            )
        )
    return Ok(None)


def _hook(
    ctx: ReleaseContext,
    cfg: ReleaseConfig,
    name: str,
    argv: tuple[str, ...] | None,
) -> Result[str | None, ReleaseError]:
    if argv is None:
        return Ok(f"skipped: no {name} hook configured")
    ran = _run_hook(ctx, cfg, name, argv)
    if isinstance(ran, Err):
        return ran
    return Ok(None)


def _build(ctx: ReleaseContext, cfg: ReleaseConfig) -> Result[str | None, ReleaseError]:
    argv = ctx.service.hooks.build
    if argv is not None:
        ran = _run_hook(ctx, cfg, "build", argv)
        if isinstance(ran, Err):
            return ran

    artifact = Path(cfg.artifact_path)
    if not artifact.exists():
        return Err(
            ReleaseError(
                kind="artifact_missing",
                message=f"build produced no artifact at {artifact}",
                hint="check the service's [services.hooks] build command",
            )
        )
    if argv is None:
        return Ok(f"no build hook configured; using existing {artifact.name}")
    return Ok(f"built {artifact}")


def _registry_release_error(error: RegistryError) -> ReleaseError:
    match error:
        case ArtifactMissing(hint=hint):
            return ReleaseError("artifact_missing", describe_registry_error(error), hint)
        case CredentialsNotFound(hint=hint):
            return ReleaseError("credentials", describe_registry_error(error), hint)
        case InvalidRegistry():
            return ReleaseError("credentials", describe_registry_error(error))
        case _:
            return ReleaseError("push_failed", describe_registry_error(error))


def _push(ctx: ReleaseContext, cfg: ReleaseConfig) -> Result[str | None, ReleaseError]:
    required = _require_tag(cfg)
    if isinstance(required, Err):
        return required
    tag = required.value

    client = ctx.registry()
    if isinstance(client, Err):
        return Err(_registry_release_error(client.error))

    tags = (tag, cfg.latest_tag)
    pushed = client.value.push_tags(Path(cfg.artifact_path), cfg.registry, tags)
    if isinstance(pushed, Err):
        return Err(_registry_release_error(pushed.error))

    recorded = ctx.store.record_push(cfg.service, tag)
    if isinstance(recorded, Err):
        return Err(
            ReleaseError(
                kind="metadata_failed",
                message=f"image pushed but metadata not updated: {recorded.error.message}",
                hint=str(ctx.store.path_for(cfg.service)),
            )
        )
    info = recorded.value
    previous = f" (previous: {info.previous_tag})" if info.previous_tag else ""
    return Ok(f"pushed {', '.join(pushed.value)}{previous}")


def _deploy(ctx: ReleaseContext, cfg: ReleaseConfig) -> Result[str | None, ReleaseError]:
    required = _require_tag(cfg)
    if isinstance(required, Err):
        return required
    tag = required.value

    manifest = ctx.repo.resolve(cfg.manifest_path)
    updated = update_kustomization(manifest, ctx.service.registry, tag)
    if isinstance(updated, Err):
        return Err(
            ReleaseError(
                kind="manifest_failed",
                message=updated.error.message,
                hint=str(updated.error.path),
            )
        )
    change = updated.value
    ctx.console.print(f"{manifest}: newTag {change.old_tag} -> {change.new_tag}", Style.DIM)

    paths = [manifest]
    artifact_file = ctx.store.path_for(cfg.service)
    if artifact_file.exists():
        paths.append(artifact_file)

    staged = ctx.vcs.add(paths)
    if isinstance(staged, Err):
        return Err(ReleaseError(kind="git_failed", message=staged.error.message))

    committed = ctx.vcs.commit(deploy_commit_message(cfg.service, tag))
    if isinstance(committed, Err):
        if "nothing to commit" not in committed.error.message:
            return Err(ReleaseError(kind="git_failed", message=committed.error.message))
        ctx.console.print("manifest already at this tag, nothing to commit", Style.DIM)

    product = ctx.config.product
    pushed = ctx.vcs.push(product.git_remote, product.git_branch)
    if isinstance(pushed, Err):
        return Err(
            ReleaseError(
                kind="git_failed",
                message=pushed.error.message,
                hint=f"the deploy commit exists locally; push it to {product.git_remote}/"
                f"{product.git_branch} manually",
            )
        )
    return Ok(f"{cfg.service} -> {tag}")


def _reconcile(ctx: ReleaseContext, cfg: ReleaseConfig) -> Result[str | None, ReleaseError]:
    reconciled = flux.reconcile(
        source=ctx.config.reconcile.source,
        kustomization=ctx.config.reconcile.kustomization_for(cfg.namespace),
        cwd=ctx.repo.root,
        console=ctx.console,
    )
    if not reconciled:
        return Ok("reconcile failed (non-fatal); Flux will sync on its own interval")
    return Ok(None)


def _migrate(ctx: ReleaseContext, cfg: ReleaseConfig) -> Result[str | None, ReleaseError]:
    migration = ctx.service.migration
    if migration is None or migration.database == "none":
        return Ok("no migrations configured")

    required = _require_tag(cfg)
    if isinstance(required, Err):
        return required
    tag = required.value

    spec = MigrationSpec.for_service(ctx.service, namespace=cfg.namespace, tag=tag)
    result = MigrationJobRunner(ctx.cluster, ctx.console).run(spec)
    if isinstance(result, Err):
        e = result.error
        if e.logs:
            ctx.console.print("migration logs:", Style.BOLD)
            for line in e.logs.splitlines()[-30:]:
                ctx.console.print(f"  {line}", Style.DIM)
        return Err(
            ReleaseError(
                kind="migration_failed",
                message=e.message,
                hint="migrations are forward-only: fix the migration and release again",
            )
        )
    return Ok(f"{migration.database} migrations applied ({result.value.duration_seconds:.1f}s)")


def _rollout(ctx: ReleaseContext, cfg: ReleaseConfig) -> Result[str | None, ReleaseError]:
    if not cfg.watch_rollout:
        return Ok("skipped (rollout watch disabled)")

    settings = ctx.rollout.with_overrides(
        timeout_seconds=cfg.step_timeout_seconds, safe_mode=cfg.safe_mode
    )
    monitor = RolloutMonitor(ctx.cluster, ctx.console, settings)
    watched = monitor.watch(cfg.namespace, ctx.service.deployment_name)
    if isinstance(watched, Err):
        return Err(
            ReleaseError(
                kind="rollout_failed",
                message=watched.error.message,
                hint=f"forge rollout {ctx.service.name} --env {cfg.environment} --undo",
            )
        )
    report = watched.value
    return Ok(f"{report.workload.replicas} replica(s) on {report.workload.image_tag}")
