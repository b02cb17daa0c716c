"""Report rendering: rich text for terminals, JSON and Markdown for files."""

import io
import json
import logging
from pathlib import Path
from typing import Dict, Optional

from jinja2 import Environment, FileSystemLoader
from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

from preflight.checks import CHECK_TITLES
from preflight.config import ReportConfig
from preflight.models import Severity, ValidationReport, Verdict


logger = logging.getLogger(__name__)

SEVERITY_SYMBOLS: Dict[Severity, str] = {
    Severity.PASS: "✓",
    Severity.INFO: "ℹ",
    Severity.WARNING: "⚠",
    Severity.ERROR: "✗",
    Severity.CRITICAL: "✗",
}

SEVERITY_STYLES: Dict[Severity, str] = {
    Severity.PASS: "green",
    Severity.INFO: "cyan",
    Severity.WARNING: "yellow",
    Severity.ERROR: "red",
    Severity.CRITICAL: "bold red",
}

VERDICT_BANNERS: Dict[Verdict, str] = {
    Verdict.READY: "✅ READY FOR DEPLOYMENT",
    Verdict.READY_WITH_CAUTION: "⚠️  DEPLOYMENT POSSIBLE WITH CAUTION - Review warnings",
    Verdict.BLOCKED: "❌ NOT READY FOR DEPLOYMENT - Errors must be resolved",
    Verdict.DEPLOYMENT_BLOCKED: "❌ DEPLOYMENT BLOCKED - Critical errors must be resolved",
}

VERDICT_NOTES: Dict[Verdict, str] = {
    Verdict.READY: "Configuration passes stateless deployment validation!",
    Verdict.READY_WITH_CAUTION: "Multiple warnings detected. Review carefully before deploying.",
    Verdict.BLOCKED: "Resolve the errors above and run the check again.",
    Verdict.DEPLOYMENT_BLOCKED: (
        "Critical issues prevent safe deployment. Fix these first:\n"
        "  - Remove any user data from repository\n"
        "  - Remove accidentally committed secrets\n"
        "  - Ensure flake-based configuration"
    ),
}

VERDICT_STYLES: Dict[Verdict, str] = {
    Verdict.READY: "bold green",
    Verdict.READY_WITH_CAUTION: "bold yellow",
    Verdict.BLOCKED: "bold red",
    Verdict.DEPLOYMENT_BLOCKED: "bold red",
}


def check_title(name: str) -> str:
    return CHECK_TITLES.get(name, name.replace("_", " ").title())


class ReportRenderer:
    """Renders a ValidationReport. Output carries no timestamps."""

    def __init__(self, config: Optional[ReportConfig] = None):
        self.config = config or ReportConfig()

        template_dir = Path(__file__).parent / "templates"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, report: ValidationReport, fmt: Optional[str] = None) -> str:
        """Render to a string in ``fmt`` (defaults to the configured format)."""
        fmt = (fmt or self.config.format).lower()
        if fmt == "json":
            return self.render_json(report)
        if fmt == "markdown":
            return self.render_markdown(report)
        if fmt == "text":
            return self.render_text(report)
        raise ValueError(f"Unknown report format: {fmt}")

    def render_json(self, report: ValidationReport) -> str:
        data = report.to_dict()
        if self.config.show_checklist:
            data["checklist"] = list(self.config.checklist)
        return json.dumps(data, indent=2) + "\n"

    def render_markdown(self, report: ValidationReport) -> str:
        template = self.jinja_env.get_template("report.md.j2")
        sections = [
            (check_title(name), findings)
            for name, findings in report.grouped().items()
        ]
        return template.render(
            report=report,
            sections=sections,
            symbols={s.value: sym for s, sym in SEVERITY_SYMBOLS.items()},
            banner=VERDICT_BANNERS[report.verdict],
            note=VERDICT_NOTES[report.verdict],
            checklist=self.config.checklist if self.config.show_checklist else [],
        )

    def render_text(self, report: ValidationReport, width: int = 100) -> str:
        """Plain-text rendering without ANSI styling."""
        buffer = io.StringIO()
        console = Console(file=buffer, width=width, color_system=None, force_terminal=False,
                          highlight=False, emoji=False)
        self.print_report(report, console)
        return buffer.getvalue()

    def print_report(self, report: ValidationReport, console: Console):
        """Write the styled report to a rich console."""
        console.print(Rule("Pre-Deployment Validation - Stateless Configuration", style="magenta"))
        console.print(f"[cyan]Validating: {escape(report.repo_root)}[/cyan]")

        for name, findings in report.grouped().items():
            console.print()
            console.print(f"[blue]▶ {escape(check_title(name))}[/blue]")
            for finding in findings:
                style = SEVERITY_STYLES[finding.severity]
                symbol = SEVERITY_SYMBOLS[finding.severity]
                tag = "[CRITICAL] " if finding.severity == Severity.CRITICAL else ""
                console.print(f"  [{style}]{symbol} {escape(tag + finding.message)}[/{style}]")
                for detail in finding.details:
                    console.print(f"    [cyan]{SEVERITY_SYMBOLS[Severity.INFO]} {escape(detail)}[/cyan]")
                if finding.hint:
                    console.print(f"    [dim]→ {escape(finding.hint)}[/dim]")

        if self.config.show_checklist:
            console.print()
            console.print("[blue]▶ Deployment Readiness Checklist[/blue]")
            console.print()
            console.print("[cyan]Before deploying this configuration:[/cyan]")
            for index, item in enumerate(self.config.checklist, start=1):
                console.print(f"  {index}. {escape(item)}")

        summary = report.summary
        console.print()
        console.print(Rule("Pre-Deployment Check Summary", style="magenta"))
        console.print(f"[green]Passed:           {summary.passed}[/green]")
        console.print(f"[yellow]Warnings:         {summary.warnings}[/yellow]")
        console.print(f"[red]Errors:           {summary.errors}[/red]")
        if summary.critical > 0:
            console.print(f"[red]Critical Errors:  {summary.critical}[/red]")
        console.print()

        verdict_style = VERDICT_STYLES[report.verdict]
        console.print(f"[{verdict_style}]{VERDICT_BANNERS[report.verdict]}[/{verdict_style}]")
        console.print(escape(VERDICT_NOTES[report.verdict]))
        console.print(f"[dim]Verdict: {report.verdict.value} (exit code {report.exit_code})[/dim]")

    def write(self, report: ValidationReport, output_path: Path, fmt: Optional[str] = None) -> Path:
        """Render and save the report."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.render(report, fmt), encoding="utf-8")
        logger.info(f"Report saved to {output_path}")
        return output_path
