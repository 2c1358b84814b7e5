from __future__ import annotations

from dataclasses import dataclass

import typer

from forge.cluster.client import ClusterClient, KubectlClient
from forge.core.config import ForgeConfig, ServiceConfig, load_config
from forge.core.errors import ErrorCode
from forge.core.repo import RepoRoot, detect_repo_root
from forge.core.result import Err, Ok, Result
from forge.git.repository import Repository, VCSClient
from forge.output.console import ConsoleProtocol, RichConsole, Style
from forge.registry.client import RegistryClient, SkopeoRegistry
from forge.registry.credentials import discover_credentials
from forge.registry.errors import RegistryError
from forge.services.artifacts import ArtifactStore
from forge.services.release import RegistryFactory, ReleaseContext
from forge.services.rollout import RolloutSettings


@dataclass(frozen=True, slots=True)
class CLIContext:
    repo: RepoRoot
    config: ForgeConfig
    console: ConsoleProtocol
    cluster: ClusterClient
    vcs: VCSClient
    store: ArtifactStore

    def service(self, name: str) -> ServiceConfig:
        """Look up a configured service, exiting with a user error if it is unknown."""
        svc = self.config.service(name)
        if svc is None:
            self.console.error(f"unknown service: {name}")
            if self.config.services:
                self.console.print(
                    f"available: {', '.join(self.config.service_names)}", Style.DIM
                )
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        return svc

    def environments(self, mode: str | None) -> list[str]:
        requested = mode or self.config.release.default_mode
        envs = self.config.release.get_environments(requested)
        if not envs:
            self.console.error(f"no active environments for '{requested}'")
            active = ", ".join(self.config.release.effective_environments())
            self.console.print(f"active environments: {active}", Style.DIM)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        return envs

    def registry_factory(self, service: ServiceConfig, token: str | None = None) -> RegistryFactory:
        def make() -> Result[RegistryClient, RegistryError]:
            creds = discover_credentials(service.registry, token=token, cwd=self.repo.root)
            if isinstance(creds, Err):
                return creds
            return Ok(
                SkopeoRegistry(
                    creds.value,
                    cwd=self.repo.root,
                    console=self.console,
                    retries=self.config.release.push_retries,
                )
            )

        return make

    def release_context(self, service: ServiceConfig, token: str | None = None) -> ReleaseContext:
        return ReleaseContext(
            repo=self.repo,
            config=self.config,
            service=service,
            console=self.console,
            cluster=self.cluster,
            vcs=self.vcs,
            store=self.store,
            registry=self.registry_factory(service, token),
            rollout=RolloutSettings.from_config(self.config.rollout),
        )


def build_context() -> CLIContext:
    repo_result = detect_repo_root()
    if isinstance(repo_result, Err):
        typer.echo(f"error: {repo_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))
    repo = repo_result.value

    config_result = load_config(repo.config_path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        repo=repo,
        config=config_result.value,
        console=RichConsole(),
        cluster=KubectlClient(repo.root),
        vcs=Repository(repo.root),
        store=ArtifactStore(repo.deploy_dir),
    )
