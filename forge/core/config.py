"""Typed loading of ``forge.toml``.

forge.toml lives at the repository root and describes one product: its
services, the environments releases are promoted through, and the tuning knobs
of the rollout monitor and migration runner.

Example:
    [product]
    name = "shop"

    [release]
    environment_order = ["staging", "production"]
    active_environments = ["staging"]

    [[services]]
    name = "api"
    registry = "ghcr.io/acme/shop/shop-api"
    manifest = "k8s/{env}/api/kustomization.yaml"

    [services.migration]
    database = "postgres"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .durations import parse_duration
from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_int,
    get_list,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "ConfigError",
    "ForgeConfig",
    "HealthCheckConfig",
    "HooksConfig",
    "MigrationConfig",
    "MigrationsDirConfig",
    "ProductConfig",
    "ReconcileConfig",
    "ReleaseSettings",
    "RolloutConfig",
    "ServiceConfig",
    "load_config",
    # defaults
    "DEFAULT_ARCH",
    "DEFAULT_STEP_TIMEOUT_SECONDS",
    "DEFAULT_POD_SELECTOR",
    "DEFAULT_PUSH_RETRIES",
    "MIGRATION_DATABASES",
]

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

DEFAULT_ARCH = "amd64"
DEFAULT_STEP_TIMEOUT_SECONDS = 600
DEFAULT_PUSH_RETRIES = 3

DEFAULT_ROLLOUT_INTERVAL_SECONDS = 3
DEFAULT_ROLLOUT_TIMEOUT = "10m"
DEFAULT_STUCK_THRESHOLD = 10
DEFAULT_RESTART_THRESHOLD = 3
DEFAULT_POD_SELECTOR = "app={name}"

DEFAULT_HEALTH_TIMEOUT_SECONDS = 120
DEFAULT_MIGRATION_TIMEOUT_SECONDS = 300
DEFAULT_MIGRATION_POLL_SECONDS = 2

_RELEASE_MODES = ("all", "staging")
MIGRATION_DATABASES = ("postgres", "clickhouse", "elasticsearch", "databend", "none")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when forge.toml cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProductConfig:
    name: str
    git_remote: str = "origin"
    git_branch: str = "main"
    namespace_pattern: str = "{product}-{env}"

    def namespace_for(self, env: str) -> str:
        return self.namespace_pattern.format(product=self.name, env=env)


@dataclass(frozen=True, slots=True)
class ReleaseSettings:
    """Environment promotion order and pipeline defaults."""

    default_mode: str = "staging"
    environment_order: tuple[str, ...] = ("staging",)
    # None means every environment in environment_order is active.
    active_environments: tuple[str, ...] | None = None
    steps: tuple[str, ...] | None = None
    arch: str = DEFAULT_ARCH
    step_timeout_seconds: int = DEFAULT_STEP_TIMEOUT_SECONDS
    push_retries: int = DEFAULT_PUSH_RETRIES

    def effective_environments(self) -> tuple[str, ...]:
        if self.active_environments is None:
            return self.environment_order
        return self.active_environments

    def get_environments(self, mode: str) -> list[str]:
        """Resolve a mode ("all", "staging" or an environment name) to active environments.

        An environment that is not active resolves to nothing.
        """
        active = self.effective_environments()
        if mode == "all":
            return [env for env in self.environment_order if env in active]
        if mode in active:
            return [mode]
        return []


@dataclass(frozen=True, slots=True)
class RolloutConfig:
    interval_seconds: int = DEFAULT_ROLLOUT_INTERVAL_SECONDS
    timeout: str = DEFAULT_ROLLOUT_TIMEOUT
    stuck_threshold: int = DEFAULT_STUCK_THRESHOLD
    restart_threshold: int = DEFAULT_RESTART_THRESHOLD
    safe_mode: bool = False
    selector: str = DEFAULT_POD_SELECTOR

    @property
    def timeout_seconds(self) -> int:
        return parse_duration(self.timeout)


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    """Flux objects reconciled after a manifest change."""

    source: str = "flux-system"
    kustomization: str = "{namespace}"

    def kustomization_for(self, namespace: str) -> str:
        return self.kustomization.format(namespace=namespace)


@dataclass(frozen=True, slots=True)
class MigrationsDirConfig:
    """Where applied schema migrations are tracked in the repository."""

    directory: str | None = None
    pattern: str = "*"


@dataclass(frozen=True, slots=True)
class HealthCheckConfig:
    deployment: str
    timeout_seconds: int = DEFAULT_HEALTH_TIMEOUT_SECONDS


@dataclass(frozen=True, slots=True)
class MigrationConfig:
    database: str = "none"
    timeout_seconds: int = DEFAULT_MIGRATION_TIMEOUT_SECONDS
    poll_interval_seconds: int = DEFAULT_MIGRATION_POLL_SECONDS
    memory_request: str = "128Mi"
    memory_limit: str = "256Mi"
    cpu_request: str = "100m"
    cpu_limit: str = "500m"
    secret: str | None = None


@dataclass(frozen=True, slots=True)
class HooksConfig:
    """External commands (argv) run as black boxes by the matching release steps."""

    build: tuple[str, ...] | None = None
    extract_schema: tuple[str, ...] | None = None
    update_federation: tuple[str, ...] | None = None
    integration_tests: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    name: str
    registry: str
    path: str = "."
    manifest: str | None = None
    image: str = "result"
    deployment: str | None = None
    health_check: HealthCheckConfig | None = None
    migration: MigrationConfig | None = None
    hooks: HooksConfig = field(default_factory=HooksConfig)

    @property
    def deployment_name(self) -> str:
        return self.deployment or self.name

    def manifest_for(self, env: str) -> str | None:
        if self.manifest is None:
            return None
        return self.manifest.format(env=env, service=self.name)


@dataclass(frozen=True, slots=True)
class ForgeConfig:
    """Root configuration container."""

    product: ProductConfig
    release: ReleaseSettings = field(default_factory=ReleaseSettings)
    rollout: RolloutConfig = field(default_factory=RolloutConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    migrations: MigrationsDirConfig = field(default_factory=MigrationsDirConfig)
    services: tuple[ServiceConfig, ...] = ()

    def service(self, name: str) -> ServiceConfig | None:
        for svc in self.services:
            if svc.name == name:
                return svc
        return None

    @property
    def service_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.services)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ForgeConfig:
        """Create ForgeConfig from parsed TOML.

        Raises:
            ValueError: A required key is missing or a value is inconsistent.
        """
        product: StrDict = get_table(data, "product") or {}
        release: StrDict = get_table(data, "release") or {}
        rollout: StrDict = get_table(data, "rollout") or {}
        reconcile: StrDict = get_table(data, "reconcile") or {}
        migrations: StrDict = get_table(data, "migrations") or {}

        name = get_str(product, "name")
        if name is None:
            raise ValueError("product.name is required")

        return cls(
            product=ProductConfig(
                name=name,
                git_remote=get_str(product, "git_remote") or "origin",
                git_branch=get_str(product, "git_branch") or "main",
                namespace_pattern=get_str(product, "namespace_pattern") or "{product}-{env}",
            ),
            release=_parse_release(release),
            rollout=RolloutConfig(
                interval_seconds=_non_negative(
                    rollout, "interval_seconds", DEFAULT_ROLLOUT_INTERVAL_SECONDS
                ),
                timeout=_duration(rollout, "timeout", DEFAULT_ROLLOUT_TIMEOUT),
                stuck_threshold=get_int(rollout, "stuck_threshold") or DEFAULT_STUCK_THRESHOLD,
                restart_threshold=get_int(rollout, "restart_threshold")
                or DEFAULT_RESTART_THRESHOLD,
                safe_mode=get_bool(rollout, "safe_mode") or False,
                selector=get_str(rollout, "selector") or DEFAULT_POD_SELECTOR,
            ),
            reconcile=ReconcileConfig(
                source=get_str(reconcile, "source") or "flux-system",
                kustomization=get_str(reconcile, "kustomization") or "{namespace}",
            ),
            migrations=MigrationsDirConfig(
                directory=get_str(migrations, "directory"),
                pattern=get_str(migrations, "pattern") or "*",
            ),
            services=_parse_services(data),
        )


def _duration(table: Mapping[str, object], key: str, default: str) -> str:
    value = get_str(table, key) or default
    parse_duration(value)
    return value


def _non_negative(table: Mapping[str, object], key: str, default: int) -> int:
    value = get_int(table, key)
    if value is None:
        return default
    if value < 0:
        raise ValueError(f"{key} must be >= 0, got {value}")
    return value


def _parse_release(release: StrDict) -> ReleaseSettings:
    order = get_str_list(release, "environment_order") or ["staging"]
    active_raw = get_str_list(release, "active_environments")
    if "active_environments" in release and not active_raw:
        raise ValueError("release.active_environments cannot be empty if specified")
    for env in active_raw or []:
        if env not in order:
            raise ValueError(f"active environment '{env}' not found in environment_order {order}")

    default_mode = get_str(release, "default_mode") or "staging"
    if default_mode not in _RELEASE_MODES:
        raise ValueError(f"release.default_mode must be 'all' or 'staging', got '{default_mode}'")

    steps = get_str_list(release, "steps")
    return ReleaseSettings(
        default_mode=default_mode,
        environment_order=tuple(order),
        active_environments=tuple(active_raw) if active_raw else None,
        steps=tuple(steps) if steps else None,
        arch=get_str(release, "arch") or DEFAULT_ARCH,
        step_timeout_seconds=get_int(release, "step_timeout_seconds")
        or DEFAULT_STEP_TIMEOUT_SECONDS,
        push_retries=get_int(release, "push_retries") or DEFAULT_PUSH_RETRIES,
    )


def _parse_services(data: Mapping[str, object]) -> tuple[ServiceConfig, ...]:
    out: list[ServiceConfig] = []
    seen: set[str] = set()
    for item in get_list(data, "services") or []:
        table = as_str_dict(item)
        if table is None:
            raise ValueError("each [[services]] entry must be a table")

        name = get_str(table, "name")
        if name is None:
            raise ValueError("services.name is required")
        if name in seen:
            raise ValueError(f"duplicate service: {name}")
        seen.add(name)

        registry = get_str(table, "registry")
        if registry is None:
            raise ValueError(f"services.registry is required for {name}")

        out.append(
            ServiceConfig(
                name=name,
                registry=registry,
                path=get_str(table, "path") or ".",
                manifest=get_str(table, "manifest"),
                image=get_str(table, "image") or "result",
                deployment=get_str(table, "deployment"),
                health_check=_parse_health_check(get_table(table, "health_check")),
                migration=_parse_migration(get_table(table, "migration")),
                hooks=_parse_hooks(get_table(table, "hooks") or {}),
            )
        )
    return tuple(out)


def _parse_health_check(table: StrDict | None) -> HealthCheckConfig | None:
    if table is None:
        return None
    deployment = get_str(table, "deployment")
    if deployment is None:
        raise ValueError("health_check.deployment is required")
    return HealthCheckConfig(
        deployment=deployment,
        timeout_seconds=get_int(table, "timeout_seconds") or DEFAULT_HEALTH_TIMEOUT_SECONDS,
    )


def _parse_migration(table: StrDict | None) -> MigrationConfig | None:
    if table is None:
        return None
    defaults = MigrationConfig()
    database = (get_str(table, "database") or "none").lower()
    if database not in MIGRATION_DATABASES:
        raise ValueError(
            f"migration.database must be one of {', '.join(MIGRATION_DATABASES)}, got '{database}'"
        )
    return MigrationConfig(
        database=database,
        timeout_seconds=get_int(table, "timeout_seconds") or DEFAULT_MIGRATION_TIMEOUT_SECONDS,
        poll_interval_seconds=_non_negative(
            table, "poll_interval_seconds", DEFAULT_MIGRATION_POLL_SECONDS
        ),
        memory_request=get_str(table, "memory_request") or defaults.memory_request,
        memory_limit=get_str(table, "memory_limit") or defaults.memory_limit,
        cpu_request=get_str(table, "cpu_request") or defaults.cpu_request,
        cpu_limit=get_str(table, "cpu_limit") or defaults.cpu_limit,
        secret=get_str(table, "secret"),
    )


def _parse_hooks(table: StrDict) -> HooksConfig:
    def argv(key: str) -> tuple[str, ...] | None:
        items = get_str_list(table, key)
        return tuple(items) if items else None

    return HooksConfig(
        build=argv("build"),
        extract_schema=argv("extract_schema"),
        update_federation=argv("update_federation"),
        integration_tests=argv("integration_tests"),
    )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[ForgeConfig, ConfigError]:
    """Load and validate forge.toml.

    Args:
        path: Path to forge.toml

    Returns:
        Ok(ForgeConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(ForgeConfig.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))
