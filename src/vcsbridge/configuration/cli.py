"""``config`` commands: create, inspect and edit the settings file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError

from vcsbridge.configuration.settings import (
    DEFAULT_CONFIG_PATH,
    IntegrationSettings,
    bootstrap_settings,
    load_settings,
    save_settings,
)


config_app = typer.Typer(help="Manage vcsbridge configuration")

ConfigPathOption = typer.Option(DEFAULT_CONFIG_PATH, "--config-path", help="Settings file")


@config_app.command("init")
def init_config(
    config_path: Path = ConfigPathOption,
    callback_base_url: Optional[str] = typer.Option(None, help="Public URL GitHub posts deliveries to"),
    host_override: Optional[str] = typer.Option(None, help="Authority replacing the callback URL host"),
    api_base_url: Optional[str] = typer.Option(None, help="GitHub API base URL (GitHub Enterprise)"),
) -> None:
    """Write the settings file, applying the given overrides."""
    webhook: Dict[str, Any] = {}
    if callback_base_url:
        webhook["callback_base_url"] = callback_base_url
    if host_override:
        webhook["host_override"] = host_override
    overrides: Dict[str, Any] = {"webhook": webhook} if webhook else {}
    if api_base_url:
        overrides["provider"] = {"api_base_url": api_base_url}

    settings = bootstrap_settings(path=config_path, overrides=overrides)
    typer.echo(f"Settings written to {config_path}")
    typer.echo(f"Deliveries are expected at {settings.webhook.callback_base_url}{settings.webhook.callback_path}")


@config_app.command("show")
def show_config(config_path: Path = ConfigPathOption) -> None:
    """Print the effective settings as JSON."""
    settings = load_settings(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@config_app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Dotted key, e.g. webhook.host_override"),
    value: str = typer.Argument(..., help="New value; JSON literals are decoded"),
    config_path: Path = ConfigPathOption,
) -> None:
    """Change one setting and validate the result before saving."""
    document = load_settings(config_path).model_dump(mode="json")
    try:
        _set_path(document, key.split("."), _decode(value))
        updated = IntegrationSettings.model_validate(document)
    except (KeyError, ValidationError) as exc:
        typer.echo(f"Cannot set {key}: {exc}", err=True)
        raise typer.Exit(code=1)
    save_settings(updated, config_path)
    typer.echo(f"{key} = {value}")


def _decode(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _set_path(document: Dict[str, Any], keys: List[str], value: Any) -> None:
    node = document
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            raise KeyError(key)
        node = child
    if keys[-1] not in node:
        raise KeyError(keys[-1])
    node[keys[-1]] = value


__all__ = ["config_app"]
