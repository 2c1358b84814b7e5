"""Product rollback by tag swap.

A rollback never builds anything and never invents a tag. For every service
of the product it redeploys the ``previous_tag`` recorded in the service's
artifact metadata, after the registry has confirmed that image exists. Once
every service is deployed the metadata is swapped (previous becomes current
and vice versa) and committed in one commit, so running the rollback again
rolls forward to where the product started.

Steps:
1. ``build_rollback_plan``: one entry per service; fail if any service has no
   previous tag
2. ``verify_rollback_images``: every previous tag must exist in the registry
3. Confirmation (skipped with ``--force``)
4. Warn when schema migrations exist: older code will run against the newer
   schema, migrations are forward-only
5. Deploy previous tags per environment, health-checking between services
6. Swap tags in all metadata documents, or in none if any changed meanwhile
7. One commit + push
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from forge.cluster.client import ClusterClient
from forge.core.config import (
    DEFAULT_POD_SELECTOR,
    ForgeConfig,
    HealthCheckConfig,
    MigrationsDirConfig,
)
from forge.core.result import Err, Ok, Result
from forge.git.repository import VCSClient
from forge.output.console import ConsoleProtocol, Style
from forge.registry.client import RegistryClient
from forge.registry.errors import CredentialsNotFound, RegistryError
from forge.registry.errors import describe as describe_registry_error
from forge.services.artifacts import ArtifactError, ArtifactInfo, ArtifactStore
from forge.services.health import check_deployment_health
from forge.services.release import (
    DEPLOY_ONLY_STEPS,
    ReleaseContext,
    build_step_handlers,
    release_config_for,
    run_release,
)

__all__ = [
    "RegistryFor",
    "ReleaseDeployer",
    "RollbackEntry",
    "RollbackError",
    "RollbackOutcome",
    "RollbackPlan",
    "RollbackTarget",
    "ServiceDeployer",
    "build_rollback_plan",
    "count_applied_migrations",
    "execute_rollback",
    "print_plan",
    "rollback_commit_message",
    "run_rollback",
    "verify_rollback_images",
    "warn_migrations",
]

type RollbackErrorKind = Literal[
    "no_services",
    "no_previous_tag",
    "metadata_failed",
    "no_environments",
    "registry_unavailable",
    "image_missing",
    "deploy_failed",
    "health_check_failed",
    "concurrent_modification",
    "git_failed",
]


@dataclass(frozen=True, slots=True)
class RollbackError:
    kind: RollbackErrorKind
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class RollbackEntry:
    service: str
    current_tag: str
    previous_tag: str
    registry: str
    health_check: HealthCheckConfig | None = None


type RegistryFor = Callable[[RollbackEntry], Result[RegistryClient, RegistryError]]


@dataclass(frozen=True, slots=True)
class RollbackTarget:
    environment: str
    namespace: str


@dataclass(frozen=True, slots=True)
class RollbackPlan:
    product: str
    environment: str
    targets: tuple[RollbackTarget, ...]
    entries: tuple[RollbackEntry, ...]


@dataclass(frozen=True, slots=True)
class RollbackOutcome:
    plan: RollbackPlan
    cancelled: bool = False
    swapped: tuple[ArtifactInfo, ...] = ()
    commit_message: str | None = None


class ServiceDeployer(Protocol):
    """Deploys one service at an explicit tag into one environment."""

    def deploy(
        self, entry: RollbackEntry, target: RollbackTarget
    ) -> Result[None, RollbackError]: ...


class ReleaseDeployer:
    """Deploys through the release pipeline with the deploy-only steps and an explicit tag."""

    def __init__(self, context_for: Callable[[str], ReleaseContext]) -> None:
        self._context_for = context_for

    def deploy(self, entry: RollbackEntry, target: RollbackTarget) -> Result[None, RollbackError]:
        ctx = self._context_for(entry.service)
        config = release_config_for(
            ctx,
            target.environment,
            steps=DEPLOY_ONLY_STEPS,
            explicit_tag=entry.previous_tag,
        )
        result = run_release(config, build_step_handlers(ctx), ctx.console)
        if isinstance(result, Err):
            failure = result.error
            where = failure.step.label if failure.step else "validation"
            return Err(
                RollbackError(
                    kind="deploy_failed",
                    message=(
                        f"{entry.service} in {target.environment} failed at {where}: "
                        f"{failure.error.message}"
                    ),
                    hint=failure.error.hint,
                )
            )
        return Ok(None)


def build_rollback_plan(
    config: ForgeConfig,
    store: ArtifactStore,
    environment: str | None = None,
) -> Result[RollbackPlan, RollbackError]:
    if not config.services:
        return Err(
            RollbackError(
                kind="no_services",
                message="no services configured",
                hint="add [[services]] entries to forge.toml",
            )
        )

    entries: list[RollbackEntry] = []
    for svc in config.services:
        read = store.read(svc.name)
        if isinstance(read, Err):
            return Err(_metadata_error(read.error))
        info = read.value
        if not info.has_previous:
            return Err(
                RollbackError(
                    kind="no_previous_tag",
                    message=f"no previous_tag for {svc.name}, cannot roll back",
                    hint="a successful release must run first to populate previous_tag",
                )
            )
        entries.append(
            RollbackEntry(
                service=svc.name,
                current_tag=info.tag,
                previous_tag=info.previous_tag,
                registry=svc.registry,
                health_check=svc.health_check,
            )
        )

    requested = environment or "staging"
    envs = config.release.get_environments(requested)
    if not envs:
        return Err(
            RollbackError(
                kind="no_environments",
                message=f"no active environments for '{requested}'",
                hint="check [release] active_environments in forge.toml",
            )
        )

    return Ok(
        RollbackPlan(
            product=config.product.name,
            environment=requested,
            targets=tuple(RollbackTarget(env, config.product.namespace_for(env)) for env in envs),
            entries=tuple(entries),
        )
    )


def _metadata_error(error: ArtifactError) -> RollbackError:
    if error.kind == "missing":
        return RollbackError(
            kind="no_previous_tag",
            message=f"no artifact info for {error.service}, nothing to roll back",
            hint=str(error.path) if error.path else None,
        )
    return RollbackError(
        kind="metadata_failed",
        message=f"{error.service}: {error.message}",
        hint=str(error.path) if error.path else None,
    )


def verify_rollback_images(
    plan: RollbackPlan,
    registry_for: RegistryFor,
    console: ConsoleProtocol,
) -> Result[dict[str, str], RollbackError]:
    """Confirm every previous tag resolves to a manifest; returns service -> digest.

    Each entry is checked with a client for its own registry and organization.
    """
    console.print("verifying rollback images in registry", Style.BOLD)
    digests: dict[str, str] = {}
    for entry in plan.entries:
        client = registry_for(entry)
        if isinstance(client, Err):
            return Err(
                RollbackError(
                    kind="registry_unavailable",
                    message=f"{entry.service}: {describe_registry_error(client.error)}",
                    hint=(
                        client.error.hint if isinstance(client.error, CredentialsNotFound) else None
                    ),
                )
            )
        result = client.value.verify_tag_exists(entry.registry, entry.previous_tag)
        if isinstance(result, Err):
            return Err(
                RollbackError(
                    kind="image_missing",
                    message=(
                        f"rollback image for {entry.service} does not exist: "
                        f"{describe_registry_error(result.error)}"
                    ),
                    hint=(
                        f"set previous_tag in deploy/{entry.service}.artifact.json "
                        "to a known-good tag"
                    ),
                )
            )
        digest = result.value
        digests[entry.service] = digest
        console.success(f"{entry.registry}:{entry.previous_tag} ({digest[:19]})")
    return Ok(digests)


def count_applied_migrations(root: Path, cfg: MigrationsDirConfig) -> int:
    if cfg.directory is None:
        return 0
    directory = root / cfg.directory
    if not directory.is_dir():
        return 0
    return sum(1 for p in directory.glob(cfg.pattern) if p.is_file())


def rollback_commit_message(plan: RollbackPlan) -> str:
    rolled_back_to = ", ".join(f"{e.service}:{e.previous_tag}" for e in plan.entries)
    return f"chore: rollback {plan.product} ({rolled_back_to})"


def print_plan(plan: RollbackPlan, console: ConsoleProtocol) -> None:
    console.header(f"{plan.product} rollback (env: {plan.environment})")
    console.rule()
    for entry in plan.entries:
        console.print(f"  {entry.service}: {entry.current_tag} -> {entry.previous_tag}")
    targets = ", ".join(f"{t.environment} ({t.namespace})" for t in plan.targets)
    console.print(f"targets: {targets}", Style.DIM)
    console.newline()


def warn_migrations(count: int, console: ConsoleProtocol) -> None:
    if count <= 0:
        return
    console.warning(f"{count} schema migration(s) are applied in the database")
    console.print("  rollback deploys older code against the current schema", Style.WARNING)
    console.print("  migrations are forward-only and will not be reverted", Style.WARNING)


def execute_rollback(
    plan: RollbackPlan,
    *,
    deployer: ServiceDeployer,
    cluster: ClusterClient,
    store: ArtifactStore,
    vcs: VCSClient,
    console: ConsoleProtocol,
    git_remote: str,
    git_branch: str,
    skip_health_check: bool = False,
    pod_selector: str = DEFAULT_POD_SELECTOR,
) -> Result[RollbackOutcome, RollbackError]:
    """Deploy previous tags, swap metadata, commit and push once."""
    console.print("deploying previous tags", Style.BOLD)
    last = len(plan.entries) - 1
    for target in plan.targets:
        console.print(f">> {target.environment}", Style.HEADER)
        for index, entry in enumerate(plan.entries):
            deployed = deployer.deploy(entry, target)
            if isinstance(deployed, Err):
                return deployed
            console.success(
                f"{entry.service} rolled back to {entry.previous_tag} in {target.environment}"
            )

            # The last service's health is left to the operator.
            if skip_health_check or entry.health_check is None or index == last:
                continue
            healthy = check_deployment_health(
                cluster,
                console,
                namespace=target.namespace,
                deployment=entry.health_check.deployment,
                timeout_seconds=entry.health_check.timeout_seconds,
                selector=pod_selector,
            )
            if isinstance(healthy, Err):
                return Err(
                    RollbackError(
                        kind="health_check_failed",
                        message=f"{entry.service}: {healthy.error.message}",
                        hint="remaining services were not rolled back; metadata is unchanged",
                    )
                )

    console.print("swapping tags in artifact metadata", Style.BOLD)
    result = store.swap_all({entry.service: entry.current_tag for entry in plan.entries})
    if isinstance(result, Err):
        e = result.error
        kind: RollbackErrorKind = (
            "concurrent_modification" if e.kind == "concurrent_modification" else "metadata_failed"
        )
        return Err(
            RollbackError(
                kind=kind,
                message=f"{e.service}: {e.message}",
                hint=(
                    "deployments already point at the previous tags and no metadata "
                    "was changed; fix the metadata by hand"
                ),
            )
        )
    swapped = result.value
    paths = [store.path_for(entry.service) for entry in plan.entries]
    for path in paths:
        console.success(f"swapped tags in {path.name}")

    message = rollback_commit_message(plan)
    for step in (
        lambda: vcs.add(paths),
        lambda: vcs.commit(message),
        lambda: vcs.push(git_remote, git_branch),
    ):
        done = step()
        if isinstance(done, Err):
            return Err(
                RollbackError(
                    kind="git_failed",
                    message=f"git {done.error.command}: {done.error.message}",
                    hint="metadata was swapped locally; commit and push it manually",
                )
            )
    console.success("rollback tags committed and pushed")

    return Ok(RollbackOutcome(plan=plan, swapped=swapped, commit_message=message))


def run_rollback(
    plan: RollbackPlan,
    *,
    registry_for: RegistryFor,
    deployer: ServiceDeployer,
    cluster: ClusterClient,
    store: ArtifactStore,
    vcs: VCSClient,
    console: ConsoleProtocol,
    git_remote: str,
    git_branch: str,
    migration_count: int = 0,
    skip_health_check: bool = False,
    confirm: Callable[[RollbackPlan], bool] | None = None,
    pod_selector: str = DEFAULT_POD_SELECTOR,
) -> Result[RollbackOutcome, RollbackError]:
    """Verify, confirm and execute a rollback plan.

    ``confirm`` is asked once after the plan is shown; ``None`` means forced.
    """
    verified = verify_rollback_images(plan, registry_for, console)
    if isinstance(verified, Err):
        return verified

    print_plan(plan, console)
    if confirm is not None and not confirm(plan):
        console.warning("rollback cancelled")
        return Ok(RollbackOutcome(plan=plan, cancelled=True))

    warn_migrations(migration_count, console)

    outcome = execute_rollback(
        plan,
        deployer=deployer,
        cluster=cluster,
        store=store,
        vcs=vcs,
        console=console,
        git_remote=git_remote,
        git_branch=git_branch,
        skip_health_check=skip_health_check,
        pod_selector=pod_selector,
    )
    if isinstance(outcome, Ok):
        console.rule()
        console.success(f"ROLLBACK COMPLETE {plan.product} ({plan.environment})")
    return outcome
