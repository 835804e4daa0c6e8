"""
CLI interface for forrest.

Boots an app manifest from the command line:

    forrest run myapp.manifest:app --trace compact
    forrest run ./boot.py:manifest --settings settings.yaml
    forrest targets

A manifest is referenced as "module:attr" or "path/to/file.py:attr". The
attribute is either a manifest mapping (services, features, settings,
context) or an App.
"""

import asyncio
import importlib
import importlib.util
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console

from forrest import __version__
from forrest.app import App, create_app
from forrest.config import ConfigError, get_settings_path, load_settings, merge_settings
from forrest.constants import LIFECYCLE_TARGETS
from forrest.errors import ForrestError
from forrest.tracer import TRACE_MODES
from forrest.utils import setup_logging


MANIFEST_KEYS = ("services", "features", "settings", "context", "trace")


def load_manifest(reference: str) -> Any:
    """
    Import the object a manifest reference points to.

    Args:
        reference: "module:attr" or "path/to/file.py:attr"

    Raises:
        click.BadParameter: If the reference cannot be imported
    """
    module_ref, sep, attr = reference.rpartition(":")
    if not sep or not module_ref or not attr:
        raise click.BadParameter(
            f"expected MODULE:ATTR or FILE.py:ATTR, got {reference!r}", param_hint="MANIFEST"
        )

    if module_ref.endswith(".py"):
        path = Path(module_ref)
        if not path.exists():
            raise click.BadParameter(f"file not found: {path}", param_hint="MANIFEST")
        try:
            spec = importlib.util.spec_from_file_location(f"_forrest_manifest_{path.stem}", path)
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            raise click.BadParameter(f"cannot load {path}: {e}", param_hint="MANIFEST")
    else:
        try:
            module = importlib.import_module(module_ref)
        except Exception as e:
            raise click.BadParameter(f"cannot import {module_ref}: {e}", param_hint="MANIFEST")

    try:
        return getattr(module, attr)
    except AttributeError:
        raise click.BadParameter(f"{module_ref} has no attribute {attr!r}", param_hint="MANIFEST")


def manifest_to_dict(target: Any) -> dict[str, Any]:
    """Turn a loaded manifest object into create_app() keywords."""
    if isinstance(target, App):
        return {
            "services": target.services,
            "features": target.features,
            "settings": target.settings,
            "context": target.context,
            "trace": target.trace,
        }
    if isinstance(target, Mapping):
        unknown = sorted(set(target) - set(MANIFEST_KEYS))
        if unknown:
            raise click.BadParameter(
                f"unknown manifest key(s): {', '.join(unknown)}", param_hint="MANIFEST"
            )
        return dict(target)
    raise click.BadParameter(
        f"manifest must be a mapping or an App, not {type(target).__name__}",
        param_hint="MANIFEST",
    )


def apply_settings_file(manifest: dict[str, Any], settings_file: Optional[Path]) -> None:
    """Merge a YAML settings file over the manifest's mapping settings."""
    if settings_file is None:
        return
    file_settings = load_settings(settings_file)
    base = manifest.get("settings")
    if base is None:
        base = {}
    if not isinstance(base, Mapping):
        raise click.UsageError("--settings cannot be combined with a settings builder")
    manifest["settings"] = merge_settings(base, file_settings)


@click.group()
@click.version_option(version=__version__, prog_name="forrest")
def main():
    """
    forrest - Application bootstrap lifecycle engine.

    Boot apps assembled from services and features.
    """


@main.command()
@click.argument("manifest")
@click.option(
    "--settings",
    "settings_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML settings file merged over the manifest settings (default: $FORREST_SETTINGS)",
)
@click.option("--trace", type=click.Choice(TRACE_MODES), help="Print the boot trace")
@click.option("--log-level", default="WARNING", show_default=True, help="Logging level")
@click.option("--pretty", is_flag=True, help="Rich log output")
def run(manifest: str, settings_file: Optional[Path], trace: Optional[str], log_level: str, pretty: bool):
    """Boot the app defined by MANIFEST (module:attr or file.py:attr)."""
    try:
        setup_logging(log_level=log_level, log_format="pretty" if pretty else "plain")
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--log-level")

    keywords = manifest_to_dict(load_manifest(manifest))
    if trace is not None:
        keywords["trace"] = trace

    try:
        apply_settings_file(keywords, settings_file or get_settings_path())
        app = create_app(**keywords, console=Console())
        asyncio.run(app.run())
    except click.ClickException:
        raise
    except ConfigError as e:
        click.echo(f"✗ Settings error: {e}", err=True)
        raise SystemExit(1)
    except ForrestError as e:
        click.echo(f"✗ Boot failed: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        click.echo(f"✗ Boot failed: {type(e).__name__}: {e}", err=True)
        raise SystemExit(1)

    click.echo("✓ boot completed")


@main.command()
def targets():
    """List the lifecycle targets, in boot order."""
    width = max(len(name) for name in LIFECYCLE_TARGETS)
    for name, target in LIFECYCLE_TARGETS.items():
        click.echo(f"  ${name.ljust(width)}  {target}")


if __name__ == "__main__":
    main()
