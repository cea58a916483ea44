"""Operator commands for running the release sweep outside the API."""

# purpose: give operators a manual sweep trigger and a standalone scheduler process
# status: active
# depends_on: legacylink.services.release_sweep

from __future__ import annotations

import json
import signal
import threading

import typer

from ..database import Base, engine
from ..services.release_sweep import ReleaseScheduler, run_sweep_once
from ..tasks import RELEASE_SWEEP_INTERVAL_MINUTES

app = typer.Typer(help="LegacyLink release sweep commands")


@app.command("sweep")
def sweep_command() -> None:
    """Run one release sweep across all owners and print the report."""

    Base.metadata.create_all(bind=engine)
    report = run_sweep_once()
    typer.echo(json.dumps(report.model_dump(mode="json")))
    if report.owners_failed:
        raise typer.Exit(code=1)


@app.command("serve-scheduler")
def serve_scheduler_command(
    interval_minutes: float = typer.Option(
        float(RELEASE_SWEEP_INTERVAL_MINUTES),
        help="Minutes between sweep starts",
    ),
) -> None:
    """Run the sweep on a timer until interrupted."""

    if interval_minutes <= 0:
        raise typer.BadParameter("interval must be positive")
    Base.metadata.create_all(bind=engine)
    scheduler = ReleaseScheduler(interval_minutes * 60.0)
    stopped = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        typer.echo(f"Received signal {signum}, finishing current owner")
        stopped.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    scheduler.start()
    typer.echo(f"Release scheduler running every {interval_minutes:g} minutes")
    stopped.wait()
    scheduler.stop()
    if scheduler.last_report is not None:
        typer.echo(json.dumps(scheduler.last_report.model_dump(mode="json")))


if __name__ == "__main__":
    app()
