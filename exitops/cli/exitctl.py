#!/usr/bin/env python3
"""
exitctl - Command Line Interface for exitops.

Offboards a departing developer from GitHub, AWS IAM and AWS IAM Identity
Center, verifies that no access remains, and summarises the audit ledger.
"""

import logging
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..audit import AuditLogger
from ..engine.config_loader import DEFAULT_LEDGER_PATH, OffboardConfig, load_config
from ..engine.gate import ConsoleConfirmer
from ..exceptions import ConfigValidationError
from ..models import ExitCode, ModuleStatus, Outcome, RunOutcome
from ..workflows import LeaverWorkflow, create_run_summary

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    ModuleStatus.OK.value: "green",
    ModuleStatus.PARTIAL_FAILURE.value: "red",
    ModuleStatus.ABORTED.value: "red",
    ModuleStatus.SKIPPED.value: "dim",
}


def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def load_or_exit(ctx: click.Context) -> OffboardConfig:
    """Load the configuration, exiting with the config-invalid code on error."""
    try:
        return load_config(ctx.obj.get('config_path'), ctx.obj.get('env_file'))
    except ConfigValidationError as e:
        console.print("[red]❌ Configuration errors:[/red]")
        for error in e.errors:
            console.print(f"   • {escape(error)}")
        AuditLogger(DEFAULT_LEDGER_PATH).record("CONFIG", "CONFIG", str(e), Outcome.FAILURE)
        ctx.exit(int(ExitCode.CONFIG_INVALID))


def print_banner(simulate: bool):
    lines = "[bold]Developer Offboard Toolkit[/bold]"
    if simulate:
        lines += "\n[bold yellow]⚠️  DRY-RUN MODE ACTIVE  ⚠️[/bold yellow]"
    console.print(Panel.fit(lines, border_style="yellow" if simulate else "blue"))


def display_run_results(outcome: RunOutcome):
    """Display the module table, verification result and final status."""
    summary = create_run_summary(outcome)

    if summary['modules']:
        table = Table(title=f"Offboarding Results ({summary['principal']})")
        table.add_column("Provider", style="cyan")
        table.add_column("Status")
        table.add_column("Grants", justify="right")
        table.add_column("Revoked", justify="right", style="green")
        table.add_column("Simulated", justify="right", style="yellow")
        table.add_column("Skipped", justify="right", style="blue")
        table.add_column("Failed", justify="right", style="red")

        for module in summary['modules']:
            style = STATUS_STYLES.get(module['status'], "white")
            table.add_row(
                module['provider'],
                f"[{style}]{module['status']}[/{style}]",
                str(module['grants']),
                str(module['succeeded']),
                str(module['simulated']),
                str(module['skipped']),
                str(module['failed']),
            )
        console.print(table)

    display_verification(outcome)

    for error in summary['errors']:
        console.print(f"[red]  - {escape(error)}[/red]")

    code = summary['exit_code']
    if code == ExitCode.SUCCESS and outcome.simulate:
        console.print("[yellow]Dry run complete. No changes were made; access was not verified.[/yellow]")
    elif code == ExitCode.SUCCESS:
        console.print("[green]✓ Offboarding complete. No residual access detected.[/green]")
    else:
        console.print(f"[red]✗ Offboarding finished with exit code {code} ({ExitCode(code).name})[/red]")


def display_verification(outcome: RunOutcome):
    report = outcome.verification
    if report is None:
        return
    if report.clean:
        console.print("[green]✅ VERIFIED: No residual access detected[/green]")
        return
    for finding in report.findings:
        console.print(f"[red]❌ {finding.message}[/red]")
    for provider in report.incomplete:
        console.print(f"[red]❌ {provider.value}: could not be verified[/red]")
    console.print("[red]❌ RESIDUAL ACCESS DETECTED - manual review required[/red]")


def display_audit_summary(audit: AuditLogger, run_id: Optional[str]):
    summary = audit.generate_summary(run_id)

    table = Table(title="Audit Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Run ID", summary['run_id'] or "all runs")
    table.add_row("Total Actions", str(summary['total']))
    table.add_row("Successful", str(summary['successful']))
    table.add_row("Simulated", str(summary['simulated']))
    table.add_row("Info", str(summary['info']))
    table.add_row("Failed", str(summary['failed']))
    table.add_row("Ledger", summary['ledger'] or "in-memory")
    console.print(table)

    if summary['failures']:
        console.print("[red]Failures:[/red]")
        for failure in summary['failures']:
            console.print(escape(f"  - [{failure['module']}] {failure['target']}: {failure['message']}"))


@click.group()
@click.option('--config', '-c', 'config_path', type=click.Path(), help='Path to YAML configuration file')
@click.option('--env-file', '-e', type=click.Path(), help='Path to env file (e.g. config/config.env)')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config_path, env_file, verbose):
    """exitops - developer offboarding and access reconciliation"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['env_file'] = env_file


@cli.command()
@click.option('--dry-run', is_flag=True, help='Show what would be revoked without changing anything')
@click.option('--confirm-hard-delete', is_flag=True,
              help='Also delete the IAM user and SSO identity (asks for confirmation)')
@click.pass_context
def offboard(ctx, dry_run, confirm_hard_delete):
    """Revoke all access of the configured user, then verify."""
    print_banner(dry_run)
    config = load_or_exit(ctx)

    workflow = LeaverWorkflow(config, confirmer=ConsoleConfirmer(console))
    outcome = workflow.execute(simulate=dry_run, allow_hard_delete=confirm_hard_delete)

    display_run_results(outcome)
    if isinstance(workflow.audit, AuditLogger):
        display_audit_summary(workflow.audit, outcome.run_id)
    ctx.exit(int(outcome.exit_code))


@cli.command()
@click.pass_context
def verify(ctx):
    """Check that the configured user has no residual access (exit 0 or 99)."""
    config = load_or_exit(ctx)
    principal = config.principal()
    console.print(Panel.fit(f"🔍 Verifying offboarding for: [bold]{principal.display_name()}[/bold]"))

    outcome = LeaverWorkflow(config).verify()

    display_verification(outcome)
    for error in outcome.errors:
        console.print(f"[red]  - {escape(error)}[/red]")
    ctx.exit(int(outcome.exit_code))


@cli.command()
@click.option('--run-id', help='Only summarise this run')
@click.pass_context
def summary(ctx, run_id):
    """Summarise the audit ledger."""
    config = load_or_exit(ctx)
    if not config.ledger_path:
        console.print("[yellow]No ledger configured[/yellow]")
        return
    display_audit_summary(AuditLogger(config.ledger_path), run_id)


@click.command()
@click.option('--config', '-c', 'config_path', type=click.Path(), help='Path to YAML configuration file')
@click.option('--env-file', '-e', type=click.Path(), help='Path to env file (e.g. config/config.env)')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def verify_command(ctx, config_path, env_file, verbose):
    """Standalone residual-access check for compliance sweeps."""
    setup_logging(verbose)
    ctx.obj = {'config_path': config_path, 'env_file': env_file}
    ctx.invoke(verify)


def main():
    cli(obj={})


def verify_main():
    verify_command()


if __name__ == "__main__":
    main()
