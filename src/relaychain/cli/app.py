# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/cli/app.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from relaychain.config.loader import load_provision_request, load_settings, load_teardown_request
from relaychain.config.models import Settings
from relaychain.errors import ValidationError
from relaychain.logging.log import init_logging
from relaychain.observers.console import ConsoleObserver
from relaychain.observers.jsonfile import JsonFileObserver
from relaychain.observers.logger import LoggerObserver
from relaychain.provision.pipeline import ProvisioningPipeline
from relaychain.teardown.pipeline import TeardownPipeline
from relaychain.utils.cancel import CancelToken


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Relay chain provisioning CLI")


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def build_settings(
    settings_file: Optional[Path],
    *,
    strict: bool,
    workers: Optional[int],
    no_probe: bool,
) -> Settings:
    overrides: Dict[str, Any] = {"max_workers": workers}
    if strict:
        overrides["strict"] = True
    if no_probe:
        overrides["probe"] = False
    return load_settings(settings_file, overrides)


def build_observers(logger, log_path: Path, events: bool) -> List:
    observers: List = [
        LoggerObserver(logger),
        JsonFileObserver(log_path.with_suffix(".jsonl")),
    ]
    if events:
        observers.append(ConsoleObserver())
    return observers


def emit_response(response: Dict[str, Any], output: Optional[Path]) -> None:
    text = json.dumps(response, indent=2)
    if output:
        output.write_text(text + "\n")
    typer.echo(text)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def provision(
    request: Path = typer.Argument(..., exists=True, dir_okay=False, help="Provision request (YAML or JSON)"),
    settings_file: Optional[Path] = typer.Option(None, "--settings", exists=True, dir_okay=False),
    strict: bool = typer.Option(False, "--strict", help="Treat skipped nodes as failures"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Provision nodes in parallel"),
    no_probe: bool = typer.Option(False, "--no-probe", help="Skip the ping check before connecting"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Overall deadline in seconds"),
    steps: bool = typer.Option(False, "--steps", help="Include per-step outcomes in the response"),
    events: bool = typer.Option(False, "--events", help="Print lifecycle events to stderr"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
    debug: bool = typer.Option(False, "--debug"),
):
    """
    Provision a relay chain. The last node becomes the egress (terminal) node.
    """
    logger, run_id, log_path = init_logging(verbose=debug)

    try:
        settings = build_settings(settings_file, strict=strict, workers=workers, no_probe=no_probe)
        req = load_provision_request(request)
    except ValidationError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=2)

    pipeline = ProvisioningPipeline(
        settings,
        observers=build_observers(logger, log_path, events),
        run_id=run_id,
    )
    result = pipeline.run(req, cancel=CancelToken(timeout) if timeout else None)
    emit_response(result.to_provision_response(req.relay, include_steps=steps), output)

    if result.overall_status != "success":
        raise typer.Exit(code=1)


@app.command()
def teardown(
    request: Path = typer.Argument(..., exists=True, dir_okay=False, help="Teardown request (YAML or JSON)"),
    settings_file: Optional[Path] = typer.Option(None, "--settings", exists=True, dir_okay=False),
    strict: bool = typer.Option(False, "--strict", help="Treat skipped nodes as failures"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Reset nodes in parallel"),
    no_probe: bool = typer.Option(False, "--no-probe", help="Skip the ping check before connecting"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Overall deadline in seconds"),
    steps: bool = typer.Option(False, "--steps", help="Include per-step outcomes in the response"),
    events: bool = typer.Option(False, "--events", help="Print lifecycle events to stderr"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
    debug: bool = typer.Option(False, "--debug"),
):
    """
    Reset relay nodes: stop services, purge packages, flush firewall, restore hosts.
    """
    logger, run_id, log_path = init_logging(verbose=debug)

    try:
        settings = build_settings(settings_file, strict=strict, workers=workers, no_probe=no_probe)
        req = load_teardown_request(request)
    except ValidationError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=2)

    pipeline = TeardownPipeline(
        settings,
        observers=build_observers(logger, log_path, events),
        run_id=run_id,
    )
    result = pipeline.run(req, cancel=CancelToken(timeout) if timeout else None)
    response = result.to_teardown_response(include_steps=steps)
    emit_response(response, output)

    if response["status"] != "reset_complete":
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
