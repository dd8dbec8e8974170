"""Compass CLI - PDPL compliance assessments from the command line."""

from __future__ import annotations

import asyncio
import functools
import hashlib
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..core.audit import DEFAULT_PAGE_SIZE, query_audit_log
from ..core.config import get_effective_config
from ..core.dashboard import compliance_summary
from ..core.errors import CatalogError, ComplianceError
from ..core.workspace import Workspace, initialize_workspace
from ..formatters.report import generate_assessment_report
from ..models.assessment import Answer, AssessmentStatus
from ..models.control import ControlSource, RiskLevel
from ..models.organization import CloudUsage, OrganizationProfile, OrgType, Role
from ..models.remediation import TaskStatus

console = Console()
err_console = Console(stderr=True)

RISK_COLORS = {"CRITICAL": "red", "HIGH": "yellow", "MEDIUM": "cyan", "LOW": "dim"}


def _choice(enum_cls) -> click.Choice:
    return click.Choice([e.value for e in enum_cls], case_sensitive=False)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def handle_errors(func):
    """Render ComplianceError as `code: message` and exit non-zero."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ComplianceError as e:
            console.print(f"[red]{e.code}[/red]: {escape(e.message)}")
            sys.exit(1)
        except CatalogError as e:
            console.print(f"[red]CATALOG_ERROR[/red]: {escape(str(e))}")
            sys.exit(1)

    return wrapper


def _workspace(ctx: click.Context) -> Workspace:
    obj = ctx.find_root().obj
    if obj.get("workspace") is None:
        ws = Workspace(obj["root"])
        if not ws.is_initialized:
            raise click.ClickException(f"No Compass workspace in {obj['root']}. Run: compass init")
        obj["workspace"] = ws
    return obj["workspace"]


def _context(ctx: click.Context):
    ws = _workspace(ctx)
    return ws, ws.resolve_actor(ctx.find_root().obj["user"])


@click.group()
@click.version_option(__version__, prog_name="compass")
@click.option("--workspace", "-w", type=click.Path(file_okay=False), default=".", help="Workspace directory")
@click.option("--user", "-u", envvar="COMPASS_USER", help="Acting user (email or id)")
@click.pass_context
def cli(ctx: click.Context, workspace: str, user: str | None) -> None:
    """Compass - PDPL compliance assessment for health organizations."""
    root = Path(workspace)
    config = get_effective_config(root)
    _setup_logging(config["logging"]["level"])
    ctx.obj = {"root": root, "user": user, "workspace": None}


# ----------------------------------------------------------------------
# init
# ----------------------------------------------------------------------


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--org-type", required=True, type=_choice(OrgType))
@click.option("--admin-email", required=True)
@click.option("--first-name", default="")
@click.option("--last-name", default="")
@click.option("--minors", is_flag=True, help="Processes data of minors")
@click.option("--cross-border", is_flag=True, help="Transfers personal data outside the Kingdom")
@click.option("--cloud", type=_choice(CloudUsage), default=CloudUsage.NO.value)
@click.option("--research", is_flag=True, help="Conducts research on personal data")
@click.option("--ai", "uses_ai", is_flag=True, help="Uses AI or automated decisions")
@click.option("--monitoring", is_flag=True, help="Continuous monitoring of data subjects")
@click.option("--bed-count", type=int)
@click.option("--staff-size", type=int)
@click.pass_context
@handle_errors
def init(
    ctx: click.Context,
    name: str,
    org_type: str,
    admin_email: str,
    first_name: str,
    last_name: str,
    minors: bool,
    cross_border: bool,
    cloud: str,
    research: bool,
    uses_ai: bool,
    monitoring: bool,
    bed_count: int | None,
    staff_size: int | None,
) -> None:
    """Create a workspace with its organization and admin user."""
    profile = OrganizationProfile(
        org_type=OrgType(org_type.lower()),
        processes_minors=minors,
        cross_border_transfers=cross_border,
        uses_cloud=CloudUsage(cloud.lower()),
        conducts_research=research,
        uses_ai_or_automated_decisions=uses_ai,
        continuous_monitoring=monitoring,
    )
    extra = {k: v for k, v in (("bed_count", bed_count), ("staff_size", staff_size)) if v is not None}
    root = ctx.find_root().obj["root"]
    _, org, admin = initialize_workspace(
        root, name, profile, admin_email,
        admin_first_name=first_name, admin_last_name=last_name, **extra,
    )
    console.print(f"  [green]Initialized[/green] {escape(org.name)} in {root / '.compass'}")
    console.print(f"  Admin: {escape(admin.email)} ({admin.role.value})")


# ----------------------------------------------------------------------
# profile
# ----------------------------------------------------------------------


@cli.group()
def profile() -> None:
    """Organization profile."""


def _print_profile(org, result) -> None:
    console.print(f"[bold]{escape(org.name)}[/bold] ({org.profile.org_type.value})")
    for field, value in org.profile.model_dump(mode="json").items():
        if field != "org_type":
            console.print(f"  {field}: {value}")
    console.print(f"  onboarding_completed: {org.onboarding_completed}")
    console.print(f"  Activated controls: {', '.join(sorted(result.activated_controls)) or '-'}")
    console.print(f"  N/A controls: {', '.join(sorted(result.na_controls)) or '-'}")


@profile.command("show")
@click.pass_context
@handle_errors
def profile_show(ctx: click.Context) -> None:
    """Show the profile and the controls it activates or excludes."""
    ws, actor = _context(ctx)
    org, result = ws.organizations.get_profile(actor)
    _print_profile(org, result)


@profile.command("set")
@click.option("--name")
@click.option("--org-type", type=_choice(OrgType))
@click.option("--minors/--no-minors", "processes_minors", default=None)
@click.option("--cross-border/--no-cross-border", "cross_border_transfers", default=None)
@click.option("--cloud", "uses_cloud", type=_choice(CloudUsage))
@click.option("--research/--no-research", "conducts_research", default=None)
@click.option("--ai/--no-ai", "uses_ai_or_automated_decisions", default=None)
@click.option("--monitoring/--no-monitoring", "continuous_monitoring", default=None)
@click.option("--onboarding-completed/--onboarding-pending", "onboarding_completed", default=None)
@click.option("--bed-count", type=int)
@click.option("--staff-size", type=int)
@click.option("--language")
@click.pass_context
@handle_errors
def profile_set(ctx: click.Context, **changes) -> None:
    """Update organization and profile fields."""
    ws, actor = _context(ctx)
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        raise click.UsageError("Nothing to update")
    org, result = ws.organizations.update_profile(actor, **changes)
    console.print("  [green]Profile updated[/green]")
    _print_profile(org, result)


# ----------------------------------------------------------------------
# users
# ----------------------------------------------------------------------


@cli.group()
def user() -> None:
    """Organization users."""


@user.command("add")
@click.argument("email")
@click.option("--role", "-r", type=_choice(Role), default=Role.STAFF.value)
@click.option("--first-name", default="")
@click.option("--last-name", default="")
@click.pass_context
@handle_errors
def user_add(ctx: click.Context, email: str, role: str, first_name: str, last_name: str) -> None:
    """Add a user to the organization."""
    ws, actor = _context(ctx)
    new_user = ws.organizations.add_user(actor, email, role.lower(), first_name, last_name)
    console.print(f"  [green]Added[/green] {escape(new_user.email)} as {new_user.role.value} ({new_user.id})")


@user.command("list")
@click.pass_context
@handle_errors
def user_list(ctx: click.Context) -> None:
    """List organization users."""
    ws, actor = _context(ctx)
    table = Table(title="Users")
    table.add_column("Email")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("ID", overflow="fold")
    for u in ws.organizations.list_users(actor):
        table.add_row(escape(u.email), escape(f"{u.first_name} {u.last_name}".strip()), u.role.value, u.id)
    console.print(table)


# ----------------------------------------------------------------------
# controls
# ----------------------------------------------------------------------


@cli.group()
def controls() -> None:
    """Control catalog."""


def _controls_table(title: str, rows) -> Table:
    table = Table(title=title)
    table.add_column("ID", no_wrap=True)
    table.add_column("D", justify="right")
    table.add_column("Risk")
    table.add_column("Pts", justify="right")
    table.add_column("Objective")
    for c in rows:
        color = RISK_COLORS.get(c.risk_level.value, "white")
        table.add_row(
            c.id, str(c.domain_number), f"[{color}]{c.risk_level.value}[/{color}]",
            str(c.points_yes), escape(c.objective),
        )
    return table


@controls.command("list")
@click.option("--source", type=_choice(ControlSource))
@click.option("--domain", type=click.IntRange(1, 10))
@click.option("--risk", type=_choice(RiskLevel))
@click.pass_context
@handle_errors
def controls_list(ctx: click.Context, source: str | None, domain: int | None, risk: str | None) -> None:
    """List the full catalog."""
    ws = _workspace(ctx)
    rows = ws.catalog.filter(
        source=ControlSource(source.upper()) if source else None,
        domain_number=domain,
        risk_level=RiskLevel(risk.upper()) if risk else None,
    )
    console.print(_controls_table(f"Controls ({len(rows)})", rows))


@controls.command("applicable")
@click.pass_context
@handle_errors
def controls_applicable(ctx: click.Context) -> None:
    """List the controls that apply to this organization."""
    ws, actor = _context(ctx)
    result = ws.assessments.list_applicable_controls(actor)
    for group in result.domains:
        console.print(_controls_table(f"{group.domain_number}. {group.domain_name}", group.controls))
    console.print(f"  Total applicable: {result.total}")


# ----------------------------------------------------------------------
# assessments
# ----------------------------------------------------------------------


@cli.group()
def assess() -> None:
    """Assessment lifecycle."""


@assess.command("create")
@click.pass_context
@handle_errors
def assess_create(ctx: click.Context) -> None:
    """Start a new assessment version (archives the previous one)."""
    ws, actor = _context(ctx)
    assessment = ws.assessments.create_assessment(actor)
    console.print(f"  [green]Created[/green] assessment v{assessment.assessment_version}: {assessment.id}")


@assess.command("list")
@click.option("--status", type=_choice(AssessmentStatus))
@click.pass_context
@handle_errors
def assess_list(ctx: click.Context, status: str | None) -> None:
    """List assessments, newest first."""
    ws, actor = _context(ctx)
    table = Table(title="Assessments")
    table.add_column("Version", justify="right")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Responses", justify="right")
    table.add_column("ID", overflow="fold")
    for s in ws.assessments.list_assessments(actor, status.upper() if status else None):
        a = s.assessment
        score = f"{a.overall_score:.2f}%" if a.overall_score is not None else "-"
        table.add_row(str(a.assessment_version), a.status.value, score, str(s.response_count), a.id)
    console.print(table)


@assess.command("show")
@click.argument("assessment_id")
@click.pass_context
@handle_errors
def assess_show(ctx: click.Context, assessment_id: str) -> None:
    """Show an assessment and its progress."""
    ws, actor = _context(ctx)
    detail = ws.assessments.get_assessment(actor, assessment_id)
    a = detail.assessment
    console.print(f"[bold]Assessment v{a.assessment_version}[/bold] {a.id}")
    console.print(f"  Status: {a.status.value}")
    console.print(f"  Progress: {detail.answered_count}/{detail.total_applicable} ({detail.progress}%)")
    if a.overall_score is not None:
        console.print(f"  Score: {a.overall_score:.2f}%")
        console.print(
            f"  Gaps: CRITICAL {a.critical_gaps}, HIGH {a.high_gaps}, "
            f"MEDIUM {a.medium_gaps}, LOW {a.low_gaps}"
        )
    for r in detail.responses:
        console.print(f"  {r.control_id}: {r.answer.value} ({r.points_earned} pts)")


@assess.command("answer")
@click.argument("assessment_id")
@click.argument("control_id")
@click.argument("answer", type=_choice(Answer))
@click.option("--justification", "-j", help="Required for NA (20+ characters)")
@click.option("--notes", "-n")
@click.pass_context
@handle_errors
def assess_answer(
    ctx: click.Context,
    assessment_id: str,
    control_id: str,
    answer: str,
    justification: str | None,
    notes: str | None,
) -> None:
    """Answer one control."""
    ws, actor = _context(ctx)
    response = ws.assessments.submit_response(
        actor, assessment_id, control_id, answer.upper(),
        na_justification=justification, notes=notes,
    )
    console.print(f"  [green]Saved[/green] {response.control_id}: {response.answer.value} ({response.points_earned} pts)")


@assess.command("review")
@click.argument("assessment_id")
@click.pass_context
@handle_errors
def assess_review(ctx: click.Context, assessment_id: str) -> None:
    """Submit a draft for review."""
    ws, actor = _context(ctx)
    assessment = ws.assessments.submit_for_review(actor, assessment_id)
    console.print(f"  Assessment v{assessment.assessment_version} is {assessment.status.value}")


@assess.command("finalize")
@click.argument("assessment_id")
@click.pass_context
@handle_errors
def assess_finalize(ctx: click.Context, assessment_id: str) -> None:
    """Score and lock an assessment."""
    ws, actor = _context(ctx)
    a = ws.assessments.finalize(actor, assessment_id)
    console.print(f"  [green]Finalized[/green] v{a.assessment_version}: score {a.overall_score:.2f}%")
    console.print(
        f"  Gaps: CRITICAL {a.critical_gaps}, HIGH {a.high_gaps}, MEDIUM {a.medium_gaps}, LOW {a.low_gaps}"
    )


@assess.command("report")
@click.argument("assessment_id")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write markdown to a file")
@click.pass_context
@handle_errors
def assess_report(ctx: click.Context, assessment_id: str, output: str | None) -> None:
    """Render the markdown report of a finalized assessment."""
    ws, actor = _context(ctx)
    detail = ws.assessments.get_assessment(actor, assessment_id)
    report = generate_assessment_report(
        detail.assessment, detail.organization, ws.store.tasks_for_org(actor.org_id), ws.catalog,
    )
    if output:
        Path(output).write_text(report, encoding="utf-8")
        console.print(f"  Report written to {output}")
    else:
        click.echo(report)


# ----------------------------------------------------------------------
# tasks
# ----------------------------------------------------------------------


@cli.group()
def tasks() -> None:
    """Remediation tasks."""


@tasks.command("list")
@click.option("--status", type=_choice(TaskStatus))
@click.option("--risk", type=_choice(RiskLevel))
@click.option("--owner", help="Owner email or id")
@click.option("--control")
@click.option("--domain", type=click.IntRange(1, 10))
@click.pass_context
@handle_errors
def tasks_list(
    ctx: click.Context,
    status: str | None,
    risk: str | None,
    owner: str | None,
    control: str | None,
    domain: int | None,
) -> None:
    """List tasks, highest risk first."""
    ws, actor = _context(ctx)
    owner_id = None
    if owner:
        owner_user = ws.resolve_user(owner)
        owner_id = owner_user.id if owner_user else owner
    rows = ws.remediation.list_tasks(
        actor,
        status=status.upper() if status else None,
        risk_level=risk.upper() if risk else None,
        owner_user_id=owner_id,
        control_id=control,
        domain_number=domain,
    )
    table = Table(title=f"Tasks ({len(rows)})")
    table.add_column("Risk")
    table.add_column("Control", no_wrap=True)
    table.add_column("Status")
    table.add_column("Deadline")
    table.add_column("ID", overflow="fold")
    for t in rows:
        color = RISK_COLORS.get(t.risk_level.value, "white")
        table.add_row(
            f"[{color}]{t.risk_level.value}[/{color}]", t.control_id, t.status.value,
            t.deadline.strftime("%Y-%m-%d"), t.id,
        )
    console.print(table)


@tasks.command("show")
@click.argument("task_id")
@click.pass_context
@handle_errors
def tasks_show(ctx: click.Context, task_id: str) -> None:
    """Show one task."""
    ws, actor = _context(ctx)
    t = ws.remediation.get_task(actor, task_id)
    console.print(f"[bold]{escape(t.title)}[/bold]")
    console.print(f"  ID: {t.id}")
    console.print(f"  Control: {t.control_id} ({t.gap_type.value})")
    console.print(f"  Risk: {t.risk_level.value}  Status: {t.status.value}")
    console.print(f"  Deadline: {t.deadline.strftime('%Y-%m-%d')}")
    console.print(f"  Evidence required for closure: {t.evidence_required_for_closure}")
    if t.transfer_suspension:
        console.print("  [red]Transfer suspension required[/red]")
    if t.legal_basis:
        console.print(f"  Legal basis: {escape(t.legal_basis)}")
    if t.notes:
        console.print(f"  Notes: {escape(t.notes)}")
    evidence = ws.evidence.list_evidence(actor, task_id=t.id)
    console.print(f"  Evidence files: {len(evidence)}")


@tasks.command("status")
@click.argument("task_id")
@click.argument("new_status", type=_choice(TaskStatus))
@click.option("--notes", "-n")
@click.option("--rejection-note")
@click.pass_context
@handle_errors
def tasks_status(
    ctx: click.Context,
    task_id: str,
    new_status: str,
    notes: str | None,
    rejection_note: str | None,
) -> None:
    """Move a task through the remediation workflow."""
    ws, actor = _context(ctx)
    task = ws.remediation.change_status(
        actor, task_id, new_status.upper(), notes=notes, rejection_note=rejection_note,
    )
    console.print(f"  Task {task.control_id} is now {task.status.value}")


@tasks.command("assign")
@click.argument("task_id")
@click.argument("owner", required=False)
@click.option("--clear", is_flag=True, help="Remove the current owner")
@click.pass_context
@handle_errors
def tasks_assign(ctx: click.Context, task_id: str, owner: str | None, clear: bool) -> None:
    """Assign a task owner (email or id)."""
    if not owner and not clear:
        raise click.UsageError("Provide an OWNER or --clear")
    ws, actor = _context(ctx)
    owner_id = None
    if owner and not clear:
        owner_user = ws.resolve_user(owner)
        owner_id = owner_user.id if owner_user else owner
    task = ws.remediation.assign_owner(actor, task_id, owner_id)
    console.print(f"  Task {task.control_id} owner: {task.owner_user_id or '-'}")


@tasks.command("guidance")
@click.argument("task_id")
@click.option("--force", is_flag=True, help="Ignore the cached guidance")
@click.option("--ai-provider", type=click.Choice(["openai", "anthropic"]))
@click.option("--ai-model", help="Model override")
@click.pass_context
@handle_errors
def tasks_guidance(
    ctx: click.Context,
    task_id: str,
    force: bool,
    ai_provider: str | None,
    ai_model: str | None,
) -> None:
    """Generate remediation guidance for a task."""
    ws, actor = _context(ctx)
    service = ws.guidance(provider=ai_provider, model=ai_model)
    text, cached = asyncio.run(service.get_guidance(actor, task_id, force=force))
    if cached:
        console.print("  [dim]Cached guidance[/dim]")
    click.echo(text)


@tasks.command("evidence")
@click.argument("task_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--description", "-d")
@click.pass_context
@handle_errors
def tasks_evidence(ctx: click.Context, task_id: str, file: str, description: str | None) -> None:
    """Link an evidence file (hashed locally) to a task."""
    ws, actor = _context(ctx)
    path = Path(file)
    digest = hashlib.sha256(path.read_bytes()).hexdigest()
    evidence = ws.evidence.link_evidence(
        actor, path.name, digest, task_id=task_id, description=description,
    )
    console.print(f"  [green]Linked[/green] {escape(evidence.filename)} sha256:{digest[:12]}")


# ----------------------------------------------------------------------
# audit / dashboard
# ----------------------------------------------------------------------


@cli.command()
@click.option("--action")
@click.option("--user-id")
@click.option("--entity-type")
@click.option("--page", type=click.IntRange(min=1), default=1)
@click.option("--per-page", type=click.IntRange(1, 500), default=DEFAULT_PAGE_SIZE)
@click.pass_context
@handle_errors
def audit(
    ctx: click.Context,
    action: str | None,
    user_id: str | None,
    entity_type: str | None,
    page: int,
    per_page: int,
) -> None:
    """Show the audit log, newest first."""
    ws, actor = _context(ctx)
    entries, total = query_audit_log(
        ws.audit, actor, action=action, user_id=user_id, entity_type=entity_type,
        page=page, per_page=per_page,
    )
    table = Table(title=f"Audit log (page {page}, {total} entries)")
    table.add_column("Time")
    table.add_column("Action", no_wrap=True)
    table.add_column("Entity")
    table.add_column("User", overflow="fold")
    for e in entries:
        table.add_row(
            e.timestamp.strftime("%Y-%m-%d %H:%M:%S"), e.action,
            f"{e.entity_type or '-'}:{(e.entity_id or '-')[:8]}", e.user_id,
        )
    console.print(table)


@cli.command()
@click.pass_context
@handle_errors
def dashboard(ctx: click.Context) -> None:
    """Compliance summary for the organization."""
    ws, actor = _context(ctx)
    s = compliance_summary(ws.store, ws.catalog, actor, ws.clock())
    console.print(f"[bold]{escape(s.org_name)}[/bold]")
    if s.current_score is not None:
        console.print(f"  Current score: {s.current_score:.2f}% (v{s.current_version})")
        console.print(
            f"  Gaps: CRITICAL {s.critical_gaps}, HIGH {s.high_gaps}, "
            f"MEDIUM {s.medium_gaps}, LOW {s.low_gaps}"
        )
    else:
        console.print("  No finalized assessment yet")
    if s.trend:
        console.print("  Trend: " + " -> ".join(f"v{p.version} {p.score:.1f}%" for p in s.trend))
    if s.draft_progress is not None:
        console.print(f"  Draft progress: {s.draft_progress}%")
    console.print(
        f"  Tasks: {s.total_tasks} total, {s.overdue_tasks} overdue, "
        f"{s.completion_rate}% complete"
    )
    for status, count in s.tasks_by_status.items():
        if count:
            console.print(f"    {status}: {count}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
