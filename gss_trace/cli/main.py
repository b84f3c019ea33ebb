"""
gss-trace CLI.

Tools:
- record: Store a live feed in (optionally rotating) trace files
- replay: Send a trace to a connection, paced against the wall clock
- merge: Concatenate traces into one continuous timeline
- to-csv: Export a trace as CSV
- inspect: Summarize a trace file
"""

import json
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..collectors import TCPSampleConnection, TraceRecorder
from ..config import GssConfig, load_config, generate_default_config
from ..core.errors import TraceError
from ..formats.reader import TraceReader
from ..formats.record import PhysicalLayer
from ..formats.writer import RotatingTraceWriter
from ..logging_config import configure_logging
from ..pipeline import CsvExporter, TraceMerger
from ..replay import PacingEngine, ReplaySession


app = typer.Typer(
    name="gss-trace",
    help="Record, merge, replay and export sensor sample traces",
    add_completion=False,
)
console = Console()


def _fail(error: TraceError):
    """Report a fatal condition and exit non-zero."""
    console.print(f"[red]Error:[/] {error.message}")
    raise typer.Exit(1)


def _config(ctx: typer.Context) -> GssConfig:
    return ctx.obj if isinstance(ctx.obj, GssConfig) else load_config()


def _positive_speed(value: Optional[float]) -> Optional[float]:
    if value is not None and value <= 0:
        raise typer.BadParameter("must be greater than 0")
    return value


def _print_result(title: str, rows: dict):
    table = Table(title=title)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for name, value in rows.items():
        table.add_row(name, str(value))
    console.print(table)


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config", help="Config file path"),
):
    """Record, merge, replay and export sensor sample traces."""
    if config_path is not None and not config_path.exists():
        console.print(f"[red]Error:[/] Config not found: {config_path}")
        raise typer.Exit(1)

    try:
        cfg = load_config(config_path)
    except (TypeError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] Invalid configuration: {e}")
        raise typer.Exit(1)

    if ctx.invoked_subcommand != "config":
        errors = cfg.validate()
        if errors:
            console.print("[red]Invalid configuration:[/]")
            for e in errors:
                console.print(f"  - {e}")
            raise typer.Exit(1)

    configure_logging(log_level or cfg.logging.level)
    ctx.obj = cfg


# === RECORD COMMAND ===

@app.command()
def record(
    ctx: typer.Context,
    host: str = typer.Argument(..., help="Aggregator host"),
    port: int = typer.Argument(..., help="Aggregator port", min=1, max=65535),
    output: Optional[str] = typer.Option(None, "-o", "--output", help="Base name for recorded files"),
    directory: Optional[Path] = typer.Option(None, "-d", "--directory", help="Directory for recorded files"),
    physical_layer: Optional[int] = typer.Option(
        None, "-p", "--physical-layer", min=0, max=255, help="Only record this physical layer (0 = all)"
    ),
    rotate: Optional[int] = typer.Option(None, "-R", "--rotate", min=0, help="Start a new file every N seconds"),
):
    """Record samples from a live feed."""
    cfg = _config(ctx)
    rec = cfg.recording

    writer = RotatingTraceWriter(
        base_name=output if output is not None else rec.base_name,
        directory=directory if directory is not None else Path(rec.directory),
        extension=rec.extension,
        rotate_seconds=rotate if rotate is not None else rec.rotate_seconds,
    )
    layer = physical_layer if physical_layer is not None else rec.physical_layer
    recorder = TraceRecorder(TCPSampleConnection(host, port), writer, physical_layer=layer, config=cfg)

    console.print(f"[bold blue]Recording from {host}:{port}[/] ({PhysicalLayer.name(layer)})")
    try:
        result = recorder.run()
    except TraceError as e:
        _fail(e)

    _print_result("Recording", {
        "Files": len(result.files),
        "Received": f"{result.records_received:,}",
        "Filtered": f"{result.records_filtered:,}",
        "Written": f"{result.records_written:,}",
        "Duration": f"{result.duration_seconds:.2f}s",
    })


# === REPLAY COMMAND ===

@app.command()
def replay(
    ctx: typer.Context,
    host: str = typer.Argument(..., help="Aggregator host"),
    port: int = typer.Argument(..., help="Aggregator port", min=1, max=65535),
    trace_file: Path = typer.Argument(..., help="Trace file to replay"),
    speed: Optional[float] = typer.Option(
        None, "-X", "--speed", callback=_positive_speed, help="Playback speed multiplier"
    ),
    update_timestamps: bool = typer.Option(
        False, "-t", "--update-timestamps", help="Stamp records with the current time when sent"
    ),
):
    """Replay a trace file at real time or a multiple of it."""
    cfg = _config(ctx)

    try:
        engine = PacingEngine(
            speed=speed if speed is not None else cfg.replay.speed,
            drift_tolerance_ms=cfg.replay.drift_tolerance_ms,
            update_timestamps=update_timestamps or cfg.replay.update_timestamps,
        )
        session = ReplaySession(trace_file, TCPSampleConnection(host, port), engine, cfg)
        console.print(f"[bold blue]Replaying {trace_file}[/] to {host}:{port} at {engine.speed}x")
        result = session.run()
    except TraceError as e:
        _fail(e)

    _print_result("Replay", {
        "Read": f"{result.records_read:,}",
        "Sent": f"{result.records_sent:,}",
        "Late": f"{result.pacing.late:,}",
        "Duration": f"{result.duration_seconds:.2f}s",
    })
    if result.connection_lost:
        console.print("[red]Connection lost before the trace was fully sent[/]")
        raise typer.Exit(1)


# === MERGE COMMAND ===

@app.command()
def merge(
    ctx: typer.Context,
    output: Path = typer.Argument(..., help="Combined output file"),
    inputs: List[Path] = typer.Argument(..., help="Input trace files, in order"),
    force: bool = typer.Option(False, "-f", "--force", help="Overwrite the output file"),
):
    """Combine trace files into one continuous timeline."""
    cfg = _config(ctx)

    try:
        result = TraceMerger(inputs, output, overwrite=force, config=cfg.pipeline).run()
    except TraceError as e:
        _fail(e)

    _print_result("Merge", {
        "Inputs": len(result.inputs),
        "Records": f"{result.records_written:,}",
        "Final timestamp": result.final_timestamp,
        "Duration": f"{result.duration_seconds:.2f}s",
    })
    for path in result.files_cut_short:
        console.print(f"[yellow]Warning:[/] {path} ended early")


# === CSV COMMAND ===

@app.command("to-csv")
def to_csv(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="Trace file"),
    output_path: Path = typer.Argument(..., help="CSV file"),
    force: bool = typer.Option(False, "-f", "--force", help="Overwrite the output file"),
    pipsqueak: bool = typer.Option(False, "--pipsqueak", help="Decode bit-packed sensor payloads"),
):
    """Export a trace file as CSV."""
    cfg = _config(ctx)

    try:
        result = CsvExporter(
            input_path, output_path, overwrite=force, pipsqueak=pipsqueak, config=cfg.pipeline
        ).run()
    except TraceError as e:
        _fail(e)

    console.print(f"[green]Wrote {result.records_written:,} records to {result.output}[/]")


# === INSPECT COMMAND ===

@app.command()
def inspect(
    trace_file: Path = typer.Argument(..., help="Trace file"),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
):
    """Summarize a trace file."""
    try:
        summary = TraceReader.summarize(trace_file)
    except TraceError as e:
        _fail(e)

    if as_json:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
        return

    layers = ", ".join(PhysicalLayer.name(p) for p in sorted(summary.physical_layers)) or "-"
    _print_result(str(trace_file), {
        "Records": f"{summary.record_count:,}",
        "Payload bytes": f"{summary.payload_bytes:,}",
        "Span": f"{summary.span_ms / 1000:.3f}s",
        "First timestamp": summary.first_timestamp if summary.first_timestamp is not None else "-",
        "Last timestamp": summary.last_timestamp if summary.last_timestamp is not None else "-",
        "Physical layers": layers,
    })


# === CONFIG COMMAND ===

@app.command("config")
def config_cmd(
    action: str = typer.Argument(..., help="Action: init|validate|dump"),
    path: Optional[Path] = typer.Argument(None, help="Config file path"),
):
    """Configuration management."""
    if action == "init":
        console.print(generate_default_config(), markup=False, highlight=False)

    elif action == "validate":
        if not path:
            console.print("[red]Path required for validate[/]")
            raise typer.Exit(1)
        try:
            cfg = GssConfig.load(path)
        except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
            console.print(f"[red]Error:[/] {e}")
            raise typer.Exit(1)
        errors = cfg.validate()
        if errors:
            console.print("[red]Invalid configuration:[/]")
            for e in errors:
                console.print(f"  - {e}")
            raise typer.Exit(1)
        console.print(f"[green]Valid:[/] {path}")

    elif action == "dump":
        try:
            cfg = GssConfig.load(path) if path else load_config()
        except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
            console.print(f"[red]Error:[/] {e}")
            raise typer.Exit(1)
        console.print(cfg.to_yaml(), markup=False, highlight=False)

    else:
        console.print(f"[red]Unknown action:[/] {action}")
        console.print("Valid actions: init, validate, dump")
        raise typer.Exit(1)


# === VERSION COMMAND ===

@app.command()
def version():
    """Show version information."""
    console.print(f"[bold blue]gss-trace v{__version__}[/]")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
