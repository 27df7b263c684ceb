"""
Locator X-Ray CLI - Evaluate and repair XPath locators from the command line.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def detect_platform(xml_source: str) -> str:
    """Guess the platform of a page source from its node names."""
    return "ios" if "XCUIElement" in xml_source else "android"


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _load_locators(path: str) -> List[Any]:
    from locator_xray.layers.evaluation.models import Locator

    data = _load_json(path)
    if isinstance(data, dict):
        data = data.get("locators") or data.get("elements") or []
    return [Locator.from_dict(item) for item in data if isinstance(item, dict)]


@click.group()
@click.version_option(version="0.1.0", prog_name="locator-xray")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose):
    """🔬 Locator X-Ray - XPath evaluation and repair for mobile snapshots

    Evaluate locators against captured page sources and repair the ones
    that stopped matching.
    """
    _setup_logging(verbose)


@cli.command()
@click.argument("xml_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("expression")
@click.option("--platform", type=click.Choice(["android", "ios"]), default=None,
              help="Snapshot platform (detected from the XML if omitted)")
@click.option("--state-id", default="cli", help="State identifier for the snapshot")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
def evaluate(xml_file, expression, platform, state_id, as_json):
    """
    Evaluate an XPath expression against a page source.

    \b
    Examples:

        locator-xray evaluate login.xml "//*[@text='Sign in']"

        locator-xray evaluate home.xml "//XCUIElementTypeButton" --platform ios --json
    """
    from locator_xray import XRayEngine

    with open(xml_file, "r", encoding="utf-8") as f:
        xml_source = f.read()
    platform = platform or detect_platform(xml_source)

    engine = XRayEngine()
    context = engine.set_context(xml_source, state_id, platform)
    if not context.has_document:
        console.print(f"[red]❌ Could not parse {xml_file}: {context.parse_error}[/red]")
        sys.exit(1)

    result = engine.evaluate(expression, highlight=False, update_ui=False)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.success else 1)

    if not result.success:
        console.print(f"[red]❌ Invalid expression: {result.error}[/red]")
        sys.exit(1)

    color = "green" if result.number_of_matches == 1 else "yellow" if result.number_of_matches else "red"
    console.print(f"[bold]Platform:[/bold] {platform}")
    console.print(f"[bold]Matches:[/bold] [{color}]{result.number_of_matches}[/{color}]")

    if result.nodes:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("#", style="dim", width=4)
        table.add_column("Node", style="green")
        table.add_column("Bounds", style="yellow")
        table.add_column("Source", max_width=60)
        for node in result.nodes[:20]:
            bounds = f"{node.x},{node.y} {node.width}x{node.height}" if node.has_bounds else "-"
            table.add_row(str(node.index), node.node_name, bounds, node.serialized)
        if len(result.nodes) > 20:
            table.add_row("...", f"+{len(result.nodes) - 20} more", "", "")
        console.print(table)


@cli.command()
@click.argument("locators_json", type=click.Path(exists=True, dir_okay=False))
@click.argument("page_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--client", "client_type", default=None,
              help="Repair client: auto, cloud, heuristic (default: XRAY_REPAIR_CLIENT or auto)")
@click.option("--model", default=None, help="Provider model name (e.g. gpt-4o)")
@click.option("--batch-size", default=None, type=click.IntRange(min=1), help="Elements per repair request")
@click.option("--report-dir", default=None, help="Write stage snapshots and a run record here")
@click.option("--output", "-o", default=None, help="Write repaired locators to this JSON file")
def repair(locators_json, page_json, client_type, model, batch_size, report_dir, output):
    """
    Repair failing locators against a page snapshot.

    \b
    Examples:

        locator-xray repair locators.json page.json --client heuristic

        locator-xray repair locators.json page.json --client cloud --model gpt-4o -o fixed.json
    """
    from locator_xray import RepairConfig, RepairPipeline, XRayEngine
    from locator_xray.core.errors import XRayError
    from locator_xray.layers.repair.clients import create_repair_client
    from locator_xray.reporters.repair_recorder import RepairRecorder

    console.print(Panel.fit(
        "[bold blue]🔬 Locator X-Ray[/bold blue]\n"
        "[dim]XPath Repair[/dim]",
        border_style="blue"
    ))

    try:
        config = RepairConfig.from_env()
        if client_type:
            config.client_type = client_type
        if model:
            config.model = model
        if batch_size:
            config.batch_size = batch_size
        if report_dir:
            config.report_dir = report_dir

        locators = _load_locators(locators_json)
        page = _load_json(page_json)
        client = create_repair_client(config.client_type, model=config.model, temperature=config.temperature)
    except (XRayError, OSError, ValueError) as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        sys.exit(1)

    console.print(f"\n[bold]Locators:[/bold] {len(locators)}")
    console.print(f"[bold]Client:[/bold] {client.name.upper()}")
    console.print()

    recorder = RepairRecorder(config.report_dir) if config.report_dir else None

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Starting repair...", total=None)

        def on_progress(stage: str, message: str, data: Dict[str, Any]) -> None:
            progress.update(task, description=f"[{stage}] {message}")

        pipeline = RepairPipeline(client, XRayEngine(), config=config, progress=on_progress, recorder=recorder)
        outcome = asyncio.run(pipeline.run(locators, page))

    if outcome.failing_count == 0:
        console.print("[bold green]✅ No failing locators, nothing to repair.[/bold green]")
    else:
        console.print(
            f"[bold]Repaired {outcome.fixed_count} of {outcome.failing_count} failing locators[/bold]"
            f" ([red]{outcome.error_count} unresolved[/red])"
        )

    if outcome.groups:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Group", style="blue")
        table.add_column("Elements", justify="right")
        table.add_column("Status")
        for key, group in outcome.groups.items():
            color = "green" if group.status.value == "complete" else "red"
            table.add_row(key, str(len(group.elements)), f"[{color}]{group.status.value}[/{color}]")
        console.print(table)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump([locator.to_dict() for locator in outcome.locators], f, indent=2)
        console.print(f"[dim]Repaired locators: {output}[/dim]")
    if outcome.record_path:
        console.print(f"[dim]Run record: {outcome.record_path}[/dim]")


@cli.command()
def doctor():
    """
    Check system health and dependencies.

    Verifies installed packages and which repair clients are usable.
    """
    from locator_xray.core.system_profiler import SystemProfiler

    console.print(Panel.fit(
        "[bold cyan]🩺 Locator X-Ray Doctor[/bold cyan]\n"
        "[dim]System Health Check[/dim]",
        border_style="cyan"
    ))
    console.print()

    dependencies = [
        ("lxml", "Evaluation - XML/XPath", True),
        ("pydantic", "Repair - Response schema", True),
        ("click", "CLI", True),
        ("rich", "CLI - Output", True),
        ("psutil", "Doctor - System profile", True),
        ("openai", "Repair - OpenAI client", False),
        ("anthropic", "Repair - Anthropic client", False),
    ]

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Package", style="blue")
    table.add_column("Role", style="dim")
    table.add_column("Status", justify="center")

    missing_required = False
    for package, role, required in dependencies:
        try:
            __import__(package)
            status = "[green]✅ Installed[/green]"
        except ImportError:
            status = "[red]❌ Missing[/red]" if required else "[yellow]⚠️ Missing[/yellow]"
            missing_required = missing_required or required
        table.add_row(package, role, status)

    console.print(table)
    console.print()

    profile = SystemProfiler.get_profile()
    info = Table(show_header=False, box=None)
    info.add_row("[bold]Python:[/bold]", profile.python_version)
    info.add_row("[bold]OS:[/bold]", profile.os_name)
    info.add_row("[bold]RAM:[/bold]", f"{profile.available_ram_gb} / {profile.total_ram_gb} GB available")
    info.add_row("[bold]CPUs:[/bold]", str(profile.cpu_count))
    info.add_row("[bold]OpenAI:[/bold]", "[green]ready[/green]" if profile.can_use_openai else "[dim]not configured[/dim]")
    info.add_row("[bold]Anthropic:[/bold]", "[green]ready[/green]" if profile.can_use_anthropic else "[dim]not configured[/dim]")
    info.add_row("[bold]Repair client:[/bold]", SystemProfiler.recommend_client_type(profile))
    console.print(info)
    console.print()

    if missing_required:
        console.print("[red]❌ Required dependencies are missing.[/red]")
        sys.exit(1)
    console.print("[bold green]✅ Locator X-Ray is ready.[/bold green]")
    if not profile.can_use_cloud:
        console.print("[dim]Cloud repair: pip install locator-xray[cloud] and set OPENAI_API_KEY or ANTHROPIC_API_KEY[/dim]")


@cli.command()
def version():
    """Show version information."""
    from locator_xray import __version__
    console.print(f"Locator X-Ray v{__version__}")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
