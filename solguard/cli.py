"""
Command-line interface for solguard.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from solguard import __version__
from solguard.config.settings import ConfigManager, Settings
from solguard.core.engine import AnalysisEngine
from solguard.core.errors import SolguardError
from solguard.core.models import Report, Severity
from solguard.core.registry import discover_rules, get_registered_rules
from solguard.core.util.hash import compute_config_hash
from solguard.parsing.parsed_contract import load_parsed_contract
from solguard.rules import explain_selector as _explain_selector

logger = logging.getLogger("solguard")

console = Console()

app = typer.Typer(
    name="solguard",
    help="Static vulnerability scanner for parsed smart contracts",
    add_completion=False,
)

SEVERITY_STYLES = {
    "CRITICAL": "bright_red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "blue",
    "INFO": "green",
}


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def collect_inputs(target: Path) -> List[Path]:
    if target.is_file():
        return [target]
    return sorted(p for p in target.rglob("*.json") if p.is_file())


@app.command()
def scan(
    target: Path = typer.Argument(..., help="Parsed contract JSON file or directory of them"),
    json_file: Optional[Path] = typer.Option(None, "--json", help="Save reports as JSON"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    min_severity: Optional[str] = typer.Option(None, "--min-severity", help="Drop findings below this severity"),
    rules: Optional[List[str]] = typer.Option(None, "--rule", "-r", help="Rule selector to enable (repeatable)"),
    disable: Optional[List[str]] = typer.Option(None, "--disable", help="Rule selector to disable (repeatable)"),
    fail_on_severity: Optional[str] = typer.Option(None, "--fail-on-severity", help="Exit 1 if a finding reaches this severity"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Scan parsed contracts for vulnerabilities."""
    setup_logging(verbose)

    manager = ConfigManager()
    settings = manager.load(config_file)
    settings = _apply_cli_overrides(settings, min_severity, rules, disable, fail_on_severity)

    if not target.exists():
        console.print(f"[bold red]Error:[/bold red] target not found: {target}")
        raise typer.Exit(2)
    inputs = collect_inputs(target)
    if not inputs:
        console.print(f"[yellow]No parsed contract files found in {target}[/yellow]")
        raise typer.Exit(0)

    engine = AnalysisEngine(settings)
    reports: List[Report] = []
    for path in inputs:
        try:
            reports.append(engine.analyze(load_parsed_contract(path)))
        except SolguardError as e:
            console.print(f"[bold red]{type(e).__name__}[/bold red] in {path}: {e}")
            raise typer.Exit(2)

    output_path = json_file or (Path(settings.output.json_file) if settings.output.json_file else None)
    # stdout carries only the JSON payload in this mode
    emit_json = settings.output.format == "json" and not output_path

    if not emit_json:
        for report in reports:
            display_report(report)

    if output_path:
        save_json(reports, settings, output_path)
        console.print(f"[bold green]Report saved to {output_path}[/bold green]")
    if emit_json:
        typer.echo(json.dumps(build_payload(reports, settings), indent=2, sort_keys=True))

    if settings.reporting.fail_on_severity:
        gate = Severity.from_string(settings.reporting.fail_on_severity)
        if any(r.highest_severity is not None and r.highest_severity >= gate for r in reports):
            raise typer.Exit(1)


def _apply_cli_overrides(settings: Settings, min_severity, rules, disable, fail_on_severity) -> Settings:
    data = settings.model_dump()
    if min_severity:
        data["analysis"]["severity_threshold"] = min_severity
    if rules:
        data["analysis"]["enabled_rules"] = list(rules)
    if disable:
        data["analysis"]["disabled_rules"] = list(disable)
    if fail_on_severity:
        data["reporting"]["fail_on_severity"] = fail_on_severity
    return Settings.model_validate(data)


def build_payload(reports: List[Report], settings: Settings) -> dict:
    return {
        "meta": {
            "version": __version__,
            "config_hash": compute_config_hash(settings),
            "contracts": len(reports),
            "total_findings": sum(len(r.ordered_findings) for r in reports),
        },
        "reports": [r.to_dict() for r in reports],
    }


def save_json(reports: List[Report], settings: Settings, path: Path) -> None:
    path.write_text(json.dumps(build_payload(reports, settings), indent=2, sort_keys=True), encoding="utf-8")


def display_report(report: Report) -> None:
    """Display one report as a table."""
    if not report.ordered_findings:
        console.print(f"[bold green]{report.contract_name}: no findings.[/bold green]")
        return

    counts = report.count_by_severity()
    summary = ", ".join(
        f"[{SEVERITY_STYLES[name]}]{name}: {count}[/{SEVERITY_STYLES[name]}]"
        for name, count in counts.items() if count
    )
    console.print(f"\n[bold]{report.contract_name}[/bold]: {len(report.ordered_findings)} findings ({summary})")

    table = Table(title=f"{report.contract_name} findings")
    table.add_column("Severity", style="bold")
    table.add_column("Rule", style="cyan")
    table.add_column("Function")
    table.add_column("Pos", justify="right")
    table.add_column("Line", justify="right")
    table.add_column("Message")
    for finding in report.ordered_findings:
        style = SEVERITY_STYLES[finding.severity.name]
        table.add_row(
            f"[{style}]{finding.severity.name}[/{style}]",
            finding.rule_id,
            finding.function_name,
            str(finding.statement_position),
            str(finding.line),
            finding.message,
        )
    console.print(table)


@app.command()
def list_rules(
    show_metadata: bool = typer.Option(False, "--show-metadata", help="Show rule metadata"),
):
    """List all available analysis rules."""
    discover_rules()
    table = Table(title="Available Rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Description")
    table.add_column("Severity", style="magenta")
    if show_metadata:
        table.add_column("Category", style="green")
        table.add_column("CWE")

    for rule_cls in get_registered_rules():
        row = [rule_cls.rule_id, rule_cls.description, rule_cls.severity.name]
        if show_metadata:
            row += [rule_cls.category, rule_cls.cwe_id or "-"]
        table.add_row(*row)
    console.print(table)


@app.command()
def explain_selector(selector: str = typer.Argument(..., help="Rule selector to explain")):
    """Show which rules a selector matches."""
    explanation = _explain_selector(selector)
    console.print(f"Selector [cyan]{selector}[/cyan] ({explanation['match_type']}) matches "
                  f"{explanation['matched_count']} rule(s)")
    for rule in explanation["matched_rules"]:
        console.print(f"  - {rule['rule_id']} [green]({rule['category']})[/green]: {rule['description']}")


@app.command()
def init_config(
    path: Path = typer.Argument(Path("solguard.toml"), help="Where to write the configuration"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write the default configuration as TOML."""
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists; use --force to overwrite[/yellow]")
        raise typer.Exit(1)
    ConfigManager().write(path, Settings())
    console.print(f"[bold green]Configuration written to {path}[/bold green]")


def main() -> None:
    app()


if __name__ == "__main__":
    sys.exit(main())
