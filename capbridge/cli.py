"""Typer CLI entrypoint."""

from __future__ import annotations

import typer

from capbridge.core.config import Settings, load_settings
from capbridge.core.errors import CapbridgeError
from capbridge.core.ledger import ExposureLedger
from capbridge.core.map_loader import load_maps
from capbridge.storage import load_ledger

app = typer.Typer(help="Bridge smart-home device capabilities to an accessory hub")


def _settings() -> Settings:
    return load_settings()


def _ledger(settings: Settings) -> ExposureLedger:
    return load_ledger(settings.ledger_path)


def _fail(exc: CapbridgeError) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=1)


@app.command("maps")
def list_maps() -> None:
    """List loaded capability maps and the capabilities they bind."""
    try:
        loaded = load_maps(_settings().maps_dir)
    except CapbridgeError as exc:
        raise _fail(exc) from None
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    if not loaded.maps:
        typer.echo("No capability maps loaded")
        raise typer.Exit(code=1)

    for capability_map in loaded.maps:
        typer.echo(f"{capability_map.id}: {capability_map.name} -> {capability_map.service}")
        typer.echo(f"  class: {', '.join(capability_map.classes)}")
        for section, table in (
            ("required", capability_map.required),
            ("optional", capability_map.optional),
            ("triggers", capability_map.triggers),
        ):
            if table:
                typer.echo(f"  {section}: {', '.join(table)}")


@app.command("exposure")
def list_exposure() -> None:
    """Show the persisted exposure state of every known device."""
    try:
        ledger = _ledger(_settings())
    except CapbridgeError as exc:
        raise _fail(exc) from None
    if not len(ledger):
        typer.echo("No devices in exposure ledger")
        return
    for device_id in sorted(ledger):
        state = "exposed" if ledger.get(device_id) else "hidden"
        typer.echo(f"{device_id}: {state}")


def _set_exposure(device_id: str, exposed: bool) -> None:
    try:
        ledger = _ledger(_settings())
        ledger.set(device_id, exposed)
        written = ledger.save()
    except CapbridgeError as exc:
        raise _fail(exc) from None
    state = "exposed" if exposed else "hidden"
    suffix = "" if written else " (unchanged)"
    typer.echo(f"{device_id}: {state}{suffix}")


@app.command("expose")
def expose(device_id: str) -> None:
    """Mark a device as exposed."""
    _set_exposure(device_id, True)


@app.command("unexpose")
def unexpose(device_id: str) -> None:
    """Mark a device as hidden."""
    _set_exposure(device_id, False)


@app.command("forget")
def forget(device_id: str) -> None:
    """Drop a device's exposure decision so it is treated as new."""
    try:
        ledger = _ledger(_settings())
        if not ledger.has(device_id):
            typer.echo(f"{device_id}: not in exposure ledger")
            return
        ledger.delete(device_id)
        ledger.save()
    except CapbridgeError as exc:
        raise _fail(exc) from None
    typer.echo(f"{device_id}: forgotten")


def _set_all(exposed: bool) -> None:
    try:
        ledger = _ledger(_settings())
        ledger.set_all(exposed)
    except CapbridgeError as exc:
        raise _fail(exc) from None
    state = "exposed" if exposed else "hidden"
    typer.echo(f"{len(ledger)} devices {state}")


@app.command("expose-all")
def expose_all() -> None:
    """Mark every known device as exposed."""
    _set_all(True)


@app.command("unexpose-all")
def unexpose_all() -> None:
    """Mark every known device as hidden."""
    _set_all(False)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
