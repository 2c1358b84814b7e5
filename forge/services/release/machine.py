"""Release pipeline driver.

A release is an ordered list of steps, each executed by a handler that knows
nothing about its neighbours. The driver validates the configuration, runs the
handlers in order, times each one, and stops at the first failure. It never
retries, reorders or skips a step, and never rolls back: what already
happened (pushed images, pushed commits) stays, and the failure is reported
loudly instead.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from contextlib import suppress
from time import monotonic

from forge.core.result import Err, Ok, Result
from forge.output.console import ConsoleProtocol, Style

from .errors import ReleaseError, ReleaseFailure
from .model import (
    Completed,
    Failed,
    ReleaseConfig,
    ReleasePhase,
    ReleaseStep,
    StepResult,
)

__all__ = ["StepHandler", "StepHandlers", "run_release"]

StepHandler = Callable[[ReleaseConfig], Result[str | None, ReleaseError]]
StepHandlers = Mapping[ReleaseStep, StepHandler]


def run_release(
    config: ReleaseConfig,
    handlers: StepHandlers,
    console: ConsoleProtocol,
) -> Result[tuple[StepResult, ...], ReleaseFailure]:
    problems = config.validate()
    if problems:
        return Err(
            ReleaseFailure(
                error=ReleaseError(
                    kind="invalid_config",
                    message="; ".join(problems),
                    hint=f"release of {config.service or '<unnamed>'} rejected before any step ran",
                )
            )
        )

    missing = [s.cli_id for s in config.steps if s not in handlers]
    if missing:
        return Err(
            ReleaseFailure(
                error=ReleaseError(
                    kind="missing_handler",
                    message=f"no handler for step(s): {', '.join(missing)}",
                )
            )
        )

    _report(lambda: _print_header(config, console))

    results: list[StepResult] = []
    total = len(config.steps)

    for index, step in enumerate(config.steps, start=1):
        _report(lambda: console.print(f"[{index}/{total}] {step.label}", Style.BOLD))

        started = monotonic()
        outcome = handlers[step](config)
        elapsed = monotonic() - started

        match outcome:
            case Ok(message):
                results.append(StepResult(step, True, elapsed, message))
                _report(lambda: _print_step_ok(step, elapsed, message, console))
            case Err(error):
                results.append(StepResult(step, False, elapsed, error.message))
                _report(lambda: _print_step_error(step, elapsed, error, console))
                done = tuple(results)
                _report(lambda: _print_summary(config, done, Failed(step), console))
                return Err(ReleaseFailure(error=error, step=step, results=done))

    done = tuple(results)
    _report(lambda: _print_summary(config, done, Completed(), console))
    return Ok(done)


def _report(fn: Callable[[], None]) -> None:
    # Output problems must not change the pipeline outcome.
    with suppress(Exception):
        fn()


def _print_header(config: ReleaseConfig, console: ConsoleProtocol) -> None:
    console.rule()
    console.header(f"Release {config.product}/{config.service} -> {config.environment}")
    console.rule()
    console.print(f"namespace: {config.namespace}", Style.DIM)
    if config.registry:
        console.print(f"registry:  {config.registry}", Style.DIM)
    if config.image_tag:
        console.print(f"tag:       {config.image_tag}", Style.DIM)
    console.print(f"steps:     {', '.join(s.cli_id for s in config.steps)}", Style.DIM)
    console.newline()


def _print_summary(
    config: ReleaseConfig,
    results: tuple[StepResult, ...],
    phase: ReleasePhase,
    console: ConsoleProtocol,
) -> None:
    console.newline()
    console.rule()
    match phase:
        case Completed():
            console.success(f"release completed: {config.product}/{config.service}")
        case Failed(step=step):
            console.error(f"release failed at {step.label}: {config.product}/{config.service}")

    for r in results:
        marker = "ok  " if r.success else "FAIL"
        line = f"  {marker} {r.step.label:<18} {r.duration_seconds:6.1f}s"
        if r.message and not r.success:
            line += f"  {r.message}"
        console.print(line, Style.SUCCESS if r.success else Style.ERROR)

    total = sum(r.duration_seconds for r in results)
    console.print(f"  total {total:.1f}s", Style.DIM)


def _print_step_ok(
    step: ReleaseStep, elapsed: float, message: str | None, console: ConsoleProtocol
) -> None:
    suffix = f": {message}" if message else ""
    console.success(f"{step.label} ({elapsed:.1f}s){suffix}")


def _print_step_error(
    step: ReleaseStep, elapsed: float, error: ReleaseError, console: ConsoleProtocol
) -> None:
    console.error(f"{step.label} failed after {elapsed:.1f}s: {error.message}")
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
