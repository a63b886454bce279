"""Typer CLI entrypoint for hushbrew."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml

from hushbrew.brew import BrewNotFoundError, Homebrew
from hushbrew.config import AppSettings, load_settings, load_upgrade_config
from hushbrew.coordinator import RunCoordinator
from hushbrew.gate import evaluate
from hushbrew.logging_utils import configure_logging
from hushbrew.notify import Notifier
from hushbrew.signals import SignalCollectors
from hushbrew.state import read_run_state

app = typer.Typer(
    add_completion=False,
    help="Daily Homebrew upgrades that wait for a quiet moment.",
    no_args_is_help=True,
)

SETTINGS_FILE_OPTION = typer.Option(
    None,
    "--settings-file",
    help="Optional settings YAML path.",
    exists=False,
    file_okay=True,
    dir_okay=False,
    readable=True,
)


def _load_and_optionally_configure_logger(
    settings_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=settings_file)
    if configure:
        logger = configure_logging(settings.paths.log_file)
    else:
        logger = logging.getLogger("hushbrew")
    return settings, logger


def _locate_brew(settings: AppSettings) -> Homebrew:
    try:
        return Homebrew.locate(settings.brew.prefix, query_timeout_s=settings.pipeline.query_timeout_s)
    except BrewNotFoundError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command("run")
def run_cmd(
    force: bool = typer.Option(
        False,
        "--force",
        help="Run even if an attempt was already recorded today.",
    ),
    settings_file: Path | None = SETTINGS_FILE_OPTION,
) -> None:
    """Attempt today's upgrade if conditions allow."""

    settings, logger = _load_and_optionally_configure_logger(settings_file, configure=True)
    brew = _locate_brew(settings)
    coordinator = RunCoordinator(
        settings,
        brew=brew,
        collectors=SignalCollectors(settings, brew.prefix),
        notifier=Notifier(settings.notifications),
        logger=logger,
    )
    outcome = coordinator.run(force=force)
    logger.debug("run.outcome status=%s issues=%s", outcome.status, len(outcome.report.errors))

    typer.echo(f"status: {outcome.status}")
    if outcome.reason:
        typer.echo(f"reason: {outcome.reason}")
    for issue in outcome.report.errors:
        typer.echo(f"issue: {issue}")


@app.command("check")
def check_cmd(
    settings_file: Path | None = SETTINGS_FILE_OPTION,
) -> None:
    """Evaluate the readiness gate without upgrading anything."""

    settings, _ = _load_and_optionally_configure_logger(settings_file, configure=False)
    brew = _locate_brew(settings)
    readiness = evaluate(SignalCollectors(settings, brew.prefix), settings.gate)
    typer.echo(f"readiness: {readiness.status}")
    if readiness.reason:
        typer.echo(f"reason: {readiness.reason}")


@app.command("status")
def status_cmd(
    settings_file: Path | None = SETTINGS_FILE_OPTION,
) -> None:
    """Print the last recorded attempt and lock state."""

    settings, _ = _load_and_optionally_configure_logger(settings_file, configure=False)
    paths = settings.paths
    state = read_run_state(paths.state_file, paths.lock_file)
    typer.echo(f"last_success: {state.last_success.isoformat() if state.last_success else 'never'}")
    typer.echo(f"lock_held: {state.lock_held}")
    typer.echo(f"log_file: {paths.log_file}")
    typer.echo(f"state_file: {paths.state_file}")
    typer.echo(f"config_file: {paths.config_file}")


@app.command("show-config")
def show_config(
    settings_file: Path | None = SETTINGS_FILE_OPTION,
) -> None:
    """Print the effective settings and upgrade config."""

    settings, _ = _load_and_optionally_configure_logger(settings_file, configure=False)
    upgrade_config = load_upgrade_config(settings.paths.config_file)
    rendered = yaml.safe_dump(
        {"settings": settings.as_dict(), "upgrade": upgrade_config.as_dict()},
        sort_keys=False,
    )
    typer.echo(rendered)


def main() -> None:
    """CLI script entrypoint."""

    app()


if __name__ == "__main__":
    main()
