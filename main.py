import logging
import sys
from typing import Tuple

import click

from batch import BatchDriver, ExitCode, run_batch
from config import Config, load_config
from content_types import get_profile
from engine import SteamWorkshopEngine
from options import BatchOptions, Direction, Visibility
from telemetry import init_telemetry, shutdown_telemetry, start_span
from utils import set_download_request_policy

__version__ = "1.0.0"
APP_NAME = "Workshop Tool"


def configure_logging(config: Config) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file, mode="a", encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
        force=True,
    )


def _paths(values: Tuple[str, ...]) -> Tuple[str, ...] | None:
    return tuple(values) if values else None


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--mods", "-m", multiple=True, help="Mod directories or ids (glob patterns allowed).")
@click.option("--blueprints", "-b", multiple=True, help="Blueprint directories or ids.")
@click.option("--scripts", "-s", multiple=True, help="Ingame script directories or ids.")
@click.option("--worlds", "-w", multiple=True, help="World directories or ids.")
@click.option("--scenarios", "-x", multiple=True, help="Scenario directories or ids.")
@click.option("--collections", "-c", multiple=True, help="Collection ids to download.")
@click.option("--tags", "-t", multiple=True, help="Tags to apply (comma or semicolon separated).")
@click.option("--exclude", "-e", multiple=True, help="File extensions to leave out of uploads.")
@click.option("--compile", "compile_", is_flag=True, help="Validate content before uploading.")
@click.option("--dry-run", is_flag=True, help="Prepare items without sending anything.")
@click.option("--dev", "development", is_flag=True, help="Tag items as development versions.")
@click.option(
    "--visibility",
    type=click.Choice([v.name.lower() for v in Visibility]),
    default=None,
    help="Visibility of published items.",
)
@click.option("--force", is_flag=True, help="Upload even if content is unchanged.")
@click.option(
    "--thumb",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Preview image to use.",
)
@click.option("--update-only", is_flag=True, help="Only update items that are already published.")
@click.option("--extract", is_flag=True, help="Extract downloaded items next to local content.")
@click.option("--upload", is_flag=True, help="Publish items to the workshop.")
@click.option("--download", is_flag=True, help="Download items instead of uploading.")
@click.option("--game", default=None, help="Game profile (space-engineers, medieval-engineers).")
@click.version_option(__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    mods: Tuple[str, ...],
    blueprints: Tuple[str, ...],
    scripts: Tuple[str, ...],
    worlds: Tuple[str, ...],
    scenarios: Tuple[str, ...],
    collections: Tuple[str, ...],
    tags: Tuple[str, ...],
    exclude: Tuple[str, ...],
    compile_: bool,
    dry_run: bool,
    development: bool,
    visibility: str | None,
    force: bool,
    thumb: str | None,
    update_only: bool,
    extract: bool,
    upload: bool,
    download: bool,
    game: str | None,
) -> None:
    """Batch upload or download Steam Workshop content."""
    options = BatchOptions.create(
        direction=Direction.DOWNLOAD if download else Direction.UPLOAD,
        mods=_paths(mods),
        blueprints=_paths(blueprints),
        scripts=_paths(scripts),
        worlds=_paths(worlds),
        scenarios=_paths(scenarios),
        collections=_paths(collections),
        tags=tags,
        exclude_extensions=exclude,
        compile=compile_,
        dry_run=dry_run,
        development=development,
        visibility=visibility,
        force=force,
        thumbnail=thumb,
        update_only=update_only,
        extract=extract,
        upload=upload,
    )
    if not options.has_inputs():
        click.echo(ctx.get_help())
        ctx.exit(int(ExitCode.NO_INPUTS))

    config = load_config()
    configure_logging(config)
    ctx.exit(int(run(config, options, game or config.game)))


def run(config: Config, options: BatchOptions, game: str) -> ExitCode:
    try:
        profile = get_profile(game)
        set_download_request_policy(config.http_retries, config.http_retry_backoff)
        init_telemetry(__version__)
        engine = SteamWorkshopEngine(config, profile)
    except Exception as exc:
        logging.error("An exception occurred initializing: %s", exc)
        logging.debug("Initialization failure", exc_info=True)
        return ExitCode.INIT_FAILED

    try:
        if not engine.is_available():
            logging.warning("* SteamCMD not found at %s *", config.steamcmd_path)
            logging.warning("* Only compile testing is available. *")
            logging.warning("")
            if options.is_download:
                return ExitCode.SESSION_UNAVAILABLE
            options = options.replace(upload=False, dry_run=True)

        logging.info("%s %s (%s)", APP_NAME, __version__, profile.name)
        driver = BatchDriver(engine, profile, config.data_root)
        with start_span("workshop.invocation", {"workshop.direction": options.direction.value}):
            outcome = run_batch(driver, options, poll_interval=config.poll_interval)
        code = outcome.exit_code()
        if code != ExitCode.OK:
            logging.error("Batch finished with exit code %s", int(code))
        return code
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    cli()
