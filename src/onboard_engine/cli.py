"""CLI entry point for the onboard engine."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from onboard_engine.errors import ConfigError, LedgerError
from onboard_engine.models.ledger import CleanupItemStatus, ResourceType

app = typer.Typer(
    name="onboard",
    help="Onboard a tenant administrator and track demo resources for cleanup.",
    no_args_is_help=True,
)
console = Console()

DEFAULT_HOME = Path.cwd() / ".onboard"
DEFAULT_LEDGER = DEFAULT_HOME / "ledger.json"
DEFAULT_AUDIT_DB = DEFAULT_HOME / "audit.db"

_STATUS_COLORS = {
    CleanupItemStatus.PLANNED: "cyan",
    CleanupItemStatus.DELETED: "green",
    CleanupItemStatus.ALREADY_ABSENT: "yellow",
    CleanupItemStatus.FAILED: "red",
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load_config(config: Path | None):
    from onboard_engine.config import OnboardConfig

    try:
        return OnboardConfig.from_yaml(config) if config else OnboardConfig.from_env()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def _open_ledger(ledger: Path):
    from onboard_engine.ledger.store import ResourceLedger

    try:
        return ResourceLedger(ledger)
    except LedgerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


@app.command("login-url")
def login_url(
    force_drive: bool | None = typer.Option(
        None, "--force-drive/--no-force-drive", help="Force the user's drive after sign-in"
    ),
    scope: list[str] = typer.Option([], "--scope", help="Extra scope to request (repeatable)"),
    config: Path | None = typer.Option(None, help="YAML config file (defaults to ONBOARD_* env)"),
) -> None:
    """Build the provider authorization URL for an admin sign-in."""
    from onboard_engine.orchestrator import build_authorization_request

    request = build_authorization_request(
        _load_config(config), force_backing_resource=force_drive, extra_scopes=scope
    )
    console.print(f"[bold]Open:[/bold] {request.authorization_url}")
    console.print(f"[dim]state:[/dim] {request.state}")
    console.print(f"[dim]code verifier:[/dim] {request.code_verifier}")


@app.command()
def callback(
    code: str = typer.Option(..., help="Authorization code from the redirect"),
    state: str = typer.Option(..., help="State value from the redirect"),
    verifier: str = typer.Option(..., help="Code verifier printed by login-url"),
    skip_drive: bool = typer.Option(False, help="Skip forced drive provisioning"),
    max_wait: float | None = typer.Option(None, help="Override the provisioning wait budget"),
    config: Path | None = typer.Option(None, help="YAML config file (defaults to ONBOARD_* env)"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
    audit_db: Path = typer.Option(DEFAULT_AUDIT_DB, help="Path to the audit database"),
) -> None:
    """Complete a sign-in and open a demo session for the tenant."""
    import httpx

    from onboard_engine.audit.sink import FanoutAuditSink, LoggingAuditSink
    from onboard_engine.models.auth import ProvisioningOptions
    from onboard_engine.orchestrator import AuthOrchestrator
    from onboard_engine.pipeline import register_sign_in
    from onboard_engine.storage.sqlite import AuditStore, SqliteAuditSink

    settings = _load_config(config)
    store_ledger = _open_ledger(ledger)
    audit_db.parent.mkdir(parents=True, exist_ok=True)

    async def _callback() -> None:
        store = AuditStore(audit_db)
        await store.initialize()
        try:
            audit = FanoutAuditSink([LoggingAuditSink(), SqliteAuditSink(store)])
            async with httpx.AsyncClient(timeout=30.0) as client:
                orchestrator = AuthOrchestrator.from_config(settings, client, audit)
                result = await orchestrator.handle_callback(
                    code,
                    state,
                    verifier,
                    ProvisioningOptions(
                        skip_backing_resource=skip_drive, max_wait_seconds=max_wait
                    ),
                )
            if not result.succeeded:
                console.print(f"[red]Sign-in failed: {result.error.code}: {result.error.message}[/red]")
                raise typer.Exit(1)

            principal = result.principal
            console.print(
                f"[green]Signed in {principal.display_name} ({principal.principal_name})[/green]"
            )
            console.print(
                f"  tenant: {principal.tenant.display_name} [{principal.tenant.default_domain}]"
            )
            for sku in principal.tenant.available_licenses:
                console.print(
                    f"  license {sku.display_name}: {sku.consumed_units}/{sku.total_units} used"
                )
            if result.provisioning is not None:
                console.print(
                    f"  drive: {result.provisioning.status} "
                    f"after {result.provisioning.elapsed_seconds:.1f}s"
                )
            session_id = await register_sign_in(result, store_ledger, audit)
            console.print(f"[green]Demo session: {session_id}[/green]")
        finally:
            await store.close()

    asyncio.run(_callback())


@app.command()
def start(
    tenant: str = typer.Argument(help="Tenant ID"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
) -> None:
    """Start a demo session without signing in."""
    session_id = _open_ledger(ledger).open(tenant)
    console.print(f"[green]Started demo session {session_id}[/green]")


@app.command()
def track(
    session: str = typer.Argument(help="Demo session ID"),
    resource_type: ResourceType = typer.Argument(help="Resource type"),
    resource_id: str = typer.Argument(help="Provider ID of the resource"),
    name: str = typer.Option(..., help="Display name"),
    endpoint: str = typer.Option(..., help="Endpoint used to delete the resource"),
    parent: str | None = typer.Option(None, help="Resource ID this resource hangs off"),
    meta: list[str] = typer.Option([], help="key=value metadata (repeatable)"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
) -> None:
    """Record a resource created during a demo session."""
    metadata = dict(item.split("=", 1) for item in meta if "=" in item)
    store = _open_ledger(ledger)
    try:
        record = store.track(session, resource_type, resource_id, name, endpoint, parent, metadata)
    except LedgerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    console.print(f"[green]Tracked {record.resource_type}: {record.display_name} ({record.id})[/green]")


@app.command()
def resources(
    session: str = typer.Argument(help="Demo session ID"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
) -> None:
    """List the resources tracked in a session."""
    store = _open_ledger(ledger)
    if not store.exists(session):
        console.print(f"[red]Session {session} not found[/red]")
        raise typer.Exit(1)
    records = store.resources_of(session)
    if not records:
        console.print("[dim]No resources tracked.[/dim]")
        return

    table = Table("Type", "Name", "Resource ID", "Parent", "Created")
    for r in records:
        table.add_row(
            r.resource_type.value,
            r.display_name,
            r.resource_id,
            r.parent_resource_id or "",
            r.created_at_utc.isoformat(timespec="seconds"),
        )
    console.print(table)


@app.command()
def plan(
    session: str = typer.Argument(help="Demo session ID"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
) -> None:
    """Preview the cleanup plan for a session."""
    from onboard_engine.pipeline import preview_cleanup

    store = _open_ledger(ledger)
    try:
        cleanup_plan = preview_cleanup(store, session)
    except LedgerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    console.print(f"\n[bold]Cleanup Preview for Session: {session}[/bold]")
    for resource_type in [*cleanup_plan.effective_order(), *cleanup_plan.unordered]:
        items = cleanup_plan.groups[resource_type]
        console.print(f"\n[bold]{resource_type.value.upper()}[/bold] ({len(items)} items):")
        for item in items:
            console.print(f"  • {item.display_name} ({item.resource_id})")

    if not cleanup_plan.items():
        console.print("[dim]Nothing to clean up.[/dim]")
    if cleanup_plan.warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in cleanup_plan.warnings:
            console.print(f"  • {warning}")


@app.command()
def cleanup(
    session: str = typer.Argument(help="Demo session ID"),
    token: str = typer.Option(
        "", envvar="ONBOARD_ACCESS_TOKEN", help="Bearer token for delete calls"
    ),
    live: bool = typer.Option(False, "--live", help="Actually delete (default is a dry run)"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
    audit_db: Path = typer.Option(DEFAULT_AUDIT_DB, help="Path to the audit database"),
) -> None:
    """Delete a session's resources in dependency order."""
    import httpx

    from onboard_engine.audit.sink import FanoutAuditSink, LoggingAuditSink
    from onboard_engine.ledger.executor import CleanupExecutor
    from onboard_engine.pipeline import teardown_session
    from onboard_engine.storage.sqlite import AuditStore, SqliteAuditSink

    if live and not token:
        console.print("[red]--token (or ONBOARD_ACCESS_TOKEN) is required for a live cleanup[/red]")
        raise typer.Exit(1)

    store_ledger = _open_ledger(ledger)
    audit_db.parent.mkdir(parents=True, exist_ok=True)

    async def _cleanup() -> None:
        store = AuditStore(audit_db)
        await store.initialize()
        try:
            audit = FanoutAuditSink([LoggingAuditSink(), SqliteAuditSink(store)])
            async with httpx.AsyncClient(timeout=30.0) as client:
                executor = CleanupExecutor(store_ledger, client, audit=audit)
                report = await teardown_session(executor, session, token, dry_run=not live)
        finally:
            await store.close()

        for outcome in report.outcomes:
            color = _STATUS_COLORS[outcome.status]
            detail = f" [dim]{outcome.detail}[/dim]" if outcome.detail else ""
            console.print(
                f"  [{color}]{outcome.status.value}[/{color}] "
                f"{outcome.resource_type.value}: {outcome.display_name}{detail}"
            )
        label = "preview" if report.dry_run else "execution"
        console.print(
            f"[green]Cleanup {label} completed: {report.processed} processed, "
            f"{report.failed} failed[/green]"
        )

    try:
        asyncio.run(_cleanup())
    except LedgerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


@app.command()
def complete(
    session: str = typer.Argument(help="Demo session ID"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
    audit_db: Path = typer.Option(DEFAULT_AUDIT_DB, help="Path to the audit database"),
) -> None:
    """Mark a demo session completed. No further tracking is accepted."""
    from onboard_engine.audit.sink import FanoutAuditSink, LoggingAuditSink
    from onboard_engine.pipeline import complete_session
    from onboard_engine.storage.sqlite import AuditStore, SqliteAuditSink

    store_ledger = _open_ledger(ledger)
    audit_db.parent.mkdir(parents=True, exist_ok=True)

    async def _complete() -> None:
        store = AuditStore(audit_db)
        await store.initialize()
        try:
            audit = FanoutAuditSink([LoggingAuditSink(), SqliteAuditSink(store)])
            await complete_session(store_ledger, session, audit)
        finally:
            await store.close()

    try:
        asyncio.run(_complete())
    except LedgerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    console.print(f"[green]Demo session completed: {session}[/green]")


@app.command()
def summary(
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
) -> None:
    """Summarize every tracked session."""
    result = _open_ledger(ledger).summary()
    if not result.total_sessions:
        console.print("[dim]No demo sessions found.[/dim]")
        return

    console.print(f"\n[bold]Sessions:[/bold] {result.total_sessions} ({result.active_sessions} active)")
    console.print(f"[bold]Resources:[/bold] {result.total_resources}")
    for resource_type, count in sorted(result.resources_by_type.items()):
        console.print(f"  {resource_type}: {count}")
    console.print(f"[bold]Tenants:[/bold] {', '.join(result.tenants)}")


@app.command(name="export")
def export_cmd(
    output: Path = typer.Option(..., help="Output file path"),
    session: str | None = typer.Option(None, help="Export one session instead of the summary"),
    fmt: str = typer.Option("json", "--format", help="Export format: json or yaml"),
    ledger: Path = typer.Option(DEFAULT_LEDGER, help="Path to the resource ledger"),
) -> None:
    """Export the ledger summary or a single session."""
    store = _open_ledger(ledger)
    if session:
        data = store.get(session)
        if data is None:
            console.print(f"[red]Session {session} not found[/red]")
            raise typer.Exit(1)
        if fmt == "yaml":
            from onboard_engine.export.yaml import export_session_yaml

            export_session_yaml(data, output)
        else:
            from onboard_engine.export.json import export_session_json

            export_session_json(data, output)
    else:
        if fmt == "yaml":
            from onboard_engine.export.yaml import export_summary_yaml

            export_summary_yaml(store.summary(), output)
        else:
            from onboard_engine.export.json import export_summary_json

            export_summary_json(store.summary(), output)

    console.print(f"[green]Exported to {output}[/green]")


@app.command()
def audit(
    tenant: str | None = typer.Option(None, help="Only events for this tenant"),
    kind: str | None = typer.Option(None, help="Only events of this kind"),
    audit_db: Path = typer.Option(DEFAULT_AUDIT_DB, help="Path to the audit database"),
) -> None:
    """Show the audit trail."""
    from onboard_engine.storage.sqlite import AuditStore

    if not audit_db.exists():
        console.print("[dim]No audit events recorded.[/dim]")
        return

    async def _audit() -> None:
        store = AuditStore(audit_db)
        await store.initialize()
        try:
            events = await store.list_events(tenant_id=tenant, kind=kind)
        finally:
            await store.close()

        if not events:
            console.print("[dim]No audit events recorded.[/dim]")
            return
        table = Table("When", "Kind", "Tenant", "Principal", "OK", "Session")
        for event in events:
            table.add_row(
                event.timestamp_utc.isoformat(timespec="seconds"),
                event.kind.value,
                event.tenant_id,
                event.principal_id,
                "yes" if event.succeeded else "no",
                event.session_id,
            )
        console.print(table)

    asyncio.run(_audit())


if __name__ == "__main__":
    app()
