import asyncio
import json
import sys
from pathlib import Path

import click

from diagbundle.constant import VERSION

_LOG_LEVEL_OPTION = "--log-level"
_DEFAULT_LOG_LEVEL_KEY = "default"


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(VERSION)
def cli():
    """Build and inspect diagnostic bundles."""


@cli.command()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (TOML or JSON). Default: <share_dir>/config.toml.",
)
@click.option(
    "--tombstone-dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Crash artifact directory. Default: from config.",
)
@click.option(
    "--output",
    "-o",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Bundle output path. Default: from config.",
)
@click.option(
    "--facts",
    "facts_file",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with host facts. Default: detect from this machine and config.",
)
@click.option(
    "--settings",
    "settings_file",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with the settings snapshot. Default: [settings] from config.",
)
@click.option("--locale", default="en", show_default=True, help="Message locale.")
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Log debug information. Default: no.",
)
@click.option(
    "--log-level",
    "-L",
    "log_level_override",
    multiple=True,
    help=(
        "Override log level per module. Use `module=LEVEL` to target a specific module "
        "(e.g. `-L diagbundle.export=DEBUG`) or just `LEVEL` to change the default level."
    ),
)
def export(
    config_file: Path | None,
    tombstone_dir: Path | None,
    output_path: Path | None,
    facts_file: Path | None,
    settings_file: Path | None,
    locale: str,
    debug: bool,
    log_level_override: tuple[str, ...],
):
    """Collect crash artifacts, logs and metadata into a bundle."""
    from diagbundle.config import load_config
    from diagbundle.exception import ConfigError
    from diagbundle.export.display import display_export_outcome
    from diagbundle.export.exporter import DiagnosticExporter
    from diagbundle.export.host import WritableDirectoryGate, load_host_facts
    from diagbundle.utils.logging import configure_file_logging, default_log_paths

    try:
        config = load_config(config_file)
    except ConfigError as exc:
        raise click.BadParameter(exc.message, param_hint="--config") from exc

    log_paths = default_log_paths()
    merged_levels = {**config.logging.levels, **_parse_log_level_overrides(log_level_override)}
    try:
        configure_file_logging(
            log_paths,
            base_level="TRACE" if debug else "INFO",
            module_levels=merged_levels,
            rotation=config.logging.rotation,
        )
    except ValueError as exc:
        raise click.BadOptionUsage(_LOG_LEVEL_OPTION, str(exc)) from exc

    if tombstone_dir is not None:
        config.export.tombstone_dir = tombstone_dir
    if output_path is not None:
        config.export.output_path = output_path
    if settings_file is not None:
        try:
            settings = json.loads(settings_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise click.BadOptionUsage("--settings", f"Invalid JSON: {e}") from e
        if not isinstance(settings, dict):
            raise click.BadOptionUsage("--settings", "Settings must be a JSON object")
        config.settings = settings

    exporter = DiagnosticExporter.from_config(
        config,
        log_paths=log_paths,
        facts_source=(lambda: load_host_facts(facts_file)) if facts_file else None,
        permission_gate=WritableDirectoryGate(config.export.resolved_output_path()),
        locale=locale,
    )
    outcome = asyncio.run(exporter.export())
    display_export_outcome(outcome, locale=locale)
    if not outcome.ok:
        sys.exit(1)


@cli.command()
@click.argument(
    "bundle",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
)
def inspect(bundle: Path):
    """List the entries of a bundle and print its info.json."""
    import zipfile

    from diagbundle.export.display import display_bundle

    try:
        display_bundle(bundle)
    except zipfile.BadZipFile as e:
        raise click.BadParameter(f"Not a bundle: {e}", param_hint="BUNDLE") from e


def _parse_log_level_overrides(values: tuple[str, ...]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for raw in values:
        entry = raw.strip()
        if not entry:
            raise click.BadOptionUsage(_LOG_LEVEL_OPTION, "Log level override cannot be empty")
        if "=" in entry:
            module, level = entry.split("=", 1)
            module = module.strip()
            if not module:
                raise click.BadOptionUsage(
                    _LOG_LEVEL_OPTION,
                    "Module name is required before '=' when using --log-level",
                )
        else:
            module = _DEFAULT_LOG_LEVEL_KEY
            level = entry
        level = level.strip()
        if not level:
            raise click.BadOptionUsage(_LOG_LEVEL_OPTION, "Log level cannot be empty")
        overrides[_normalize_module_key(module)] = level
    return overrides


def _normalize_module_key(module: str) -> str:
    normalized = module.strip().rstrip(".").lower()
    if not normalized:
        return _DEFAULT_LOG_LEVEL_KEY
    return normalized


def main():
    cli()


if __name__ == "__main__":
    main()
