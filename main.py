"""Stateless Preflight - Main CLI Entry Point

Validates that a declarative configuration checkout is deployment clean and
exits 0 (ready), 1 (blocked by errors) or 2 (blocked by critical findings).
"""

import sys
import logging
from pathlib import Path
from typing import Optional, Sequence

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from preflight import __version__
from preflight.config import ConfigLoader, PreflightConfig
from preflight.exceptions import ConfigError, GateError, RepositoryAccessError
from preflight.gate import DeploymentGate
from preflight.report import ReportRenderer
from preflight.validator import DeploymentValidator

logger = logging.getLogger(__name__)


class PreflightCLI:
    """Main validator CLI application."""

    def __init__(self, repo_path: str = ".", config_path: Optional[str] = None):
        """Initialize CLI application.

        Args:
            repo_path: Repository root to validate
            config_path: Optional path to configuration file
        """
        self.console = Console()
        self.err_console = Console(stderr=True)
        self.repo_path = Path(repo_path)
        self.config_path = config_path
        self.config: Optional[PreflightConfig] = None

    def load_configuration(self) -> bool:
        """Load and validate configuration.

        Returns:
            True if configuration loaded successfully, False otherwise
        """
        try:
            self.config = ConfigLoader.discover(self.repo_path, self.config_path)
            self._setup_logging()
            return True

        except ConfigError as e:
            self.err_console.print(Panel(
                f"[red]Configuration error: {str(e)}[/red]",
                title="Configuration Error",
                border_style="red"
            ))
            return False

    def _setup_logging(self):
        """Setup logging based on configuration."""
        if not self.config:
            return

        log_config = self.config.logging
        log_level = getattr(logging, log_config.level.upper(), logging.WARNING)

        handlers = [logging.StreamHandler() if log_config.console_enabled else logging.NullHandler()]
        if log_config.file_path:
            log_path = Path(log_config.file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_config.file_path))

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=handlers
        )

        logger.debug("Logging initialized", extra={
            "level": log_config.level,
            "file": log_config.file_path
        })

    def _build_validator(self) -> DeploymentValidator:
        return DeploymentValidator(self.repo_path, config=self.config)

    def run_check(
        self,
        fmt: Optional[str] = None,
        output: Optional[str] = None,
        caution_threshold: Optional[int] = None,
        show_checklist: bool = True,
    ) -> int:
        """Run the validator and print or save the report.

        Returns:
            Process exit code derived from the verdict
        """
        report_config = self.config.report.model_copy(update={"show_checklist": show_checklist})
        fmt = fmt or report_config.format
        renderer = ReportRenderer(report_config)

        report = self._build_validator().validate(caution_threshold=caution_threshold)

        if output:
            renderer.write(report, Path(output), fmt)
            self.console.print(f"[cyan]Report saved to {output}[/cyan]")
            self.console.print(f"Verdict: {report.verdict.value} (exit code {report.exit_code})")
        elif fmt == "text":
            renderer.print_report(report, self.console)
        else:
            click.echo(renderer.render(report, fmt), nl=False)

        return report.exit_code

    def run_gate(self, command: Sequence[str], skip_validation: bool = False, strict: bool = False) -> int:
        """Validate, then run the gated command when allowed."""
        gate = DeploymentGate(self._build_validator(), strict=strict)
        result = gate.run(command, skip_validation=skip_validation)

        if result.report is not None:
            ReportRenderer(self.config.report).print_report(result.report, self.console)

        if not result.command_ran:
            self.err_console.print(Panel(
                f"[red]Validation did not pass, '{command[0]}' was not run.[/red]\n\n"
                "Fix the issues above or use --no-validation to skip.",
                title="Gate Closed",
                border_style="red"
            ))
        elif result.command_exit_code != 0:
            self.err_console.print(f"[red]✗ {command[0]} exited with {result.command_exit_code}[/red]")
        else:
            self.console.print(f"[green]✓ {command[0]} completed[/green]")

        return result.exit_code

    def display_config(self):
        """Display configuration in organized format."""
        if not self.config:
            return

        layout_table = Table(title="Layout", box=box.ROUNDED)
        layout_table.add_column("Directory", style="cyan")
        layout_table.add_column("Level", style="white")
        for directory in self.config.layout.required_dirs:
            layout_table.add_row(directory, "required")
        for directory in self.config.layout.recommended_dirs:
            layout_table.add_row(directory, "recommended")
        self.console.print(layout_table)
        self.console.print()

        rules_table = Table(title="Secret Scan Rules", box=box.ROUNDED)
        rules_table.add_column("Rule", style="cyan")
        rules_table.add_column("Target", style="white")
        rules_table.add_column("Severity", style="white")
        for rule in self.config.secret_scan.rules():
            rules_table.add_row(rule.name, rule.target, rule.severity.value)
        self.console.print(rules_table)
        self.console.print()

        settings_table = Table(title="Settings", box=box.ROUNDED)
        settings_table.add_column("Setting", style="cyan")
        settings_table.add_column("Value", style="white")
        settings_table.add_row("Build Manifest", self.config.backups.manifest)
        settings_table.add_row("Lock File", self.config.reproducibility.lock_file)
        settings_table.add_row("Secrets Directory", self.config.secrets.directory)
        settings_table.add_row("Caution Threshold", str(self.config.caution_threshold))
        settings_table.add_row("Report Format", self.config.report.format)
        settings_table.add_row("Log Level", self.config.logging.level)
        self.console.print(settings_table)
        self.console.print()

        self.console.print("[green]✓ Configuration is valid[/green]")

    def export_config(self, output_path: str) -> bool:
        """Write the effective configuration, overrides merged, as YAML."""
        try:
            ConfigLoader.save_config(self.config, output_path)
        except ConfigError as e:
            self.err_console.print(Panel(f"[red]{str(e)}[/red]", title="Configuration Error", border_style="red"))
            return False

        self.console.print(f"[green]✓ Configuration written to {output_path}[/green]")
        return True


def _load_app(ctx) -> PreflightCLI:
    app = PreflightCLI(ctx.obj['repo_path'], ctx.obj['config_path'])
    if not app.load_configuration():
        sys.exit(1)
    return app


@click.group(invoke_without_command=True)
@click.option('--repo', '-r', default='.', type=click.Path(file_okay=False), help='Repository root to validate')
@click.option('--config', '-c', default=None, help='Path to configuration file (default: <repo>/preflight.yaml)')
@click.version_option(__version__, prog_name='preflight')
@click.pass_context
def cli(ctx, repo, config):
    """Stateless Preflight - pre-deployment validation for configuration trees.

    Without a subcommand, runs the full check battery against the repository.
    """
    ctx.ensure_object(dict)
    ctx.obj['repo_path'] = repo
    ctx.obj['config_path'] = config

    if ctx.invoked_subcommand is None:
        ctx.invoke(check)


@cli.command()
@click.option('--format', '-f', 'fmt', type=click.Choice(['text', 'json', 'markdown']), default=None,
              help='Report format (default from configuration)')
@click.option('--output', '-o', default=None, type=click.Path(dir_okay=False), help='Write the report to a file')
@click.option('--caution-threshold', type=click.IntRange(min=0), default=None,
              help='Warnings tolerated before the verdict becomes READY_WITH_CAUTION')
@click.option('--no-checklist', is_flag=True, default=False, help='Omit the deployment checklist')
@click.pass_context
def check(ctx, fmt, output, caution_threshold, no_checklist):
    """Run every rule check and exit with the readiness code.

    Exit codes: 0 ready (possibly with caution), 1 blocked, 2 deployment blocked.
    """
    app = _load_app(ctx)

    try:
        code = app.run_check(fmt, output, caution_threshold, show_checklist=not no_checklist)
    except RepositoryAccessError as e:
        app.err_console.print(Panel(f"[red]{str(e)}[/red]", title="Repository Error", border_style="red"))
        sys.exit(1)
    except KeyboardInterrupt:
        app.err_console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)

    sys.exit(code)


@cli.command(context_settings={"ignore_unknown_options": True})
@click.option('--no-validation', '-n', is_flag=True, default=False, help='Skip pre-deployment validation')
@click.option('--strict', is_flag=True, default=False, help='Also refuse READY_WITH_CAUTION verdicts')
@click.argument('command', nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def gate(ctx, no_validation, strict, command):
    """Run COMMAND only if the repository passes validation.

    Example: preflight gate -- nixos-generate -f iso --flake .#host
    """
    app = _load_app(ctx)

    try:
        code = app.run_gate(command, skip_validation=no_validation, strict=strict)
    except RepositoryAccessError as e:
        app.err_console.print(Panel(f"[red]{str(e)}[/red]", title="Repository Error", border_style="red"))
        sys.exit(1)
    except GateError as e:
        app.err_console.print(Panel(f"[red]{str(e)}[/red]", title="Gate Error", border_style="red"))
        sys.exit(1)

    sys.exit(code)


@cli.command()
@click.option('--write', '-w', 'write_path', default=None, type=click.Path(dir_okay=False),
              help='Save the effective configuration as YAML')
@click.pass_context
def config(ctx, write_path):
    """Validate and display configuration."""
    app = _load_app(ctx)
    app.display_config()

    if write_path and not app.export_config(write_path):
        sys.exit(1)


if __name__ == '__main__':
    cli(obj={})
