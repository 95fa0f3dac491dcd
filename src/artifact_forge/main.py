"""CLI entrypoint for artifact-forge."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from artifact_forge import __version__
from artifact_forge.controllers import (
    AgentCheckCommand,
    ArtifactForgeCliController,
    CommandResult,
    CoverageCommand,
    RunBatchCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = ArtifactForgeCliController()

_CONFIG_OPTION = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="JSON config file. Defaults to ./artifact-forge.json when present.",
)


@click.group()
@click.version_option(version=__version__, prog_name="artifact-forge")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for worker and retry diagnostics (stderr).",
)
def artifact_forge(log_level: str) -> None:
    """Bulk-generate artifacts with an external CLI agent."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@artifact_forge.command("run")
@click.argument("batch_file", type=click.Path(path_type=Path, dir_okay=False))
@_CONFIG_OPTION
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Max parallel agents. Defaults to ARTIFACT_FORGE_MAX_PARALLEL_AGENTS.",
)
@click.option(
    "--force",
    is_flag=True,
    help="Write best-effort output for failed tasks (manual review required).",
)
@click.option("--dry-run", is_flag=True, help="Parse the batch file and list tasks only.")
def run_batch(
    batch_file: Path,
    config_path: Path | None,
    limit: int | None,
    force: bool,
    dry_run: bool,
) -> None:
    """Run every task of a batch file and write accepted artifacts."""

    _emit_result(
        lambda: CONTROLLER.run_batch(
            RunBatchCommand(
                batch_file=batch_file,
                config_path=config_path,
                limit=limit,
                force=force,
                dry_run=dry_run,
            ),
        ),
        failure_message="Some artifacts failed validation; rerun or use --force.",
    )


@artifact_forge.command("coverage")
@click.option(
    "--brief",
    type=click.Path(path_type=Path),
    required=True,
    help="Markdown brief with a screen table, or a JSON list of expected names.",
)
@click.option(
    "--produced",
    type=click.Path(path_type=Path),
    required=True,
    help="Directory of produced artifacts or a JSON inventory.",
)
@click.option("--detailed", is_flag=True, help="Full lists plus component and icon usage.")
@click.option("--label", default="", help="Report label. Defaults to the produced name.")
@click.option("--extension", default=".html", show_default=True, help="Expected file extension.")
@click.option(
    "--fail-under",
    type=click.IntRange(min=0, max=100),
    default=0,
    show_default=True,
    help="Exit non-zero when coverage is below this percentage.",
)
def coverage(  # noqa: PLR0913
    brief: Path,
    produced: Path,
    detailed: bool,
    label: str,
    extension: str,
    fail_under: int,
) -> None:
    """Compare produced artifacts against the expected inventory."""

    _emit_result(
        lambda: CONTROLLER.coverage(
            CoverageCommand(
                brief=brief,
                produced=produced,
                detailed=detailed,
                label=label,
                extension=extension,
                fail_under=fail_under,
            ),
        ),
        failure_message="Coverage below threshold.",
    )


@artifact_forge.group()
def agent() -> None:
    """External agent commands."""


@agent.command("check")
@_CONFIG_OPTION
@click.option(
    "--prompt",
    default=None,
    help="Optional synthetic prompt sent through the invoker after the probe.",
)
@click.option(
    "--expect-substring",
    default="OK",
    show_default=True,
    help="Substring required in stdout for the synthetic prompt.",
)
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=1, max=300),
    default=45,
    show_default=True,
    help="Timeout for probe/run commands.",
)
def agent_check(
    config_path: Path | None,
    prompt: str | None,
    expect_substring: str,
    timeout_seconds: float,
) -> None:
    """Probe the agent executable and optionally run a synthetic prompt."""

    _emit_result(
        lambda: CONTROLLER.agent_check(
            AgentCheckCommand(
                config_path=config_path,
                prompt=prompt,
                expect_substring=expect_substring,
                timeout_seconds=timeout_seconds,
            ),
        ),
        failure_message="Agent check failed.",
    )


def _emit_result(run: Callable[[], CommandResult], *, failure_message: str) -> None:
    try:
        result = run()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    artifact_forge()
