"""Best-effort Flux reconciliation.

After a manifest commit is pushed, forge asks Flux to fetch the git source and
re-apply the target kustomization instead of waiting for the next sync
interval. Failures never fail a release: Flux converges on its own schedule
regardless, so they are reported as warnings.
"""

from __future__ import annotations

from pathlib import Path

from forge.core.result import Err
from forge.output.console import ConsoleProtocol, Style
from forge.platform.process import run as run_process
from forge.platform.tools import tool_path

__all__ = ["FLUX_NAMESPACE", "reconcile"]

FLUX_NAMESPACE = "flux-system"
_FLUX_TIMEOUT_SECONDS = 5 * 60.0


def reconcile(
    *,
    source: str,
    kustomization: str,
    cwd: Path,
    console: ConsoleProtocol,
) -> bool:
    """Reconcile the git source, then the kustomization.

    Returns True when both commands succeeded. The kustomization is
    reconciled even if the source reconcile failed.
    """
    ok = True
    for kind, name in (("source git", source), ("kustomization", kustomization)):
        cmd = [tool_path("flux"), "reconcile", *kind.split(), name, "-n", FLUX_NAMESPACE]
        console.print(" ".join(cmd), Style.DIM)
        result = run_process(cmd, cwd=cwd, timeout=_FLUX_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            ok = False
            console.warning(f"flux reconcile {kind} {name} failed: {result.error.detail}")
        else:
            console.success(f"reconciled {kind} {name}")
    return ok
