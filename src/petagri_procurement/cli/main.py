"""
Petagri Procurement CLI

Command-line interface for the tender workflow.

Usage:
    petagri-procurement init --db tender.db
    petagri-procurement assignment create --visit-id v-17 --items '[{"product_name": "Urea", "quantity": 10}]'
    petagri-procurement offering submit --assignment-id <id> --partner toko-tani --items '[...]'
    petagri-procurement approval approve --assignment-id <id> --offering-id <id> --actor admin-1
    petagri-procurement eligibility check --assignment-id <id>
    petagri-procurement delivery issue --assignment-id <id> --driver drv-3 --actor admin-1
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from petagri_procurement.kernel.errors import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ProcurementError,
    ValidationError,
)
from petagri_procurement.kernel.logging import configure_logging
from petagri_procurement.kernel.settings import SettingsHolder
from petagri_procurement.procurement import Procurement
from petagri_procurement.tender.models import AssignmentStatus

_settings = SettingsHolder.get()
# Logs go to stderr so --json output on stdout stays parseable
configure_logging(json_output=_settings.json_logs, log_level=_settings.log_level)

app = typer.Typer(
    name="petagri-procurement",
    help="Petagri tender procurement - assignments, offerings, approvals, delivery notes",
    add_completion=False,
)

assignment_app = typer.Typer(help="Tender assignment commands")
offering_app = typer.Typer(help="Partner offering commands")
approval_app = typer.Typer(help="Winner approval commands")
eligibility_app = typer.Typer(help="Delivery eligibility commands")
delivery_app = typer.Typer(help="Delivery note commands")

app.add_typer(assignment_app, name="assignment")
app.add_typer(offering_app, name="offering")
app.add_typer(approval_app, name="approval")
app.add_typer(eligibility_app, name="eligibility")
app.add_typer(delivery_app, name="delivery")

EXIT_CODES: dict[type[ProcurementError], int] = {
    ValidationError: 3,
    NotFoundError: 4,
    ConflictError: 5,
    PermissionDenied: 6,
}

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]
RoleOption = Annotated[
    Optional[list[str]],
    typer.Option("--role", help="Actor role (repeatable)"),
]


def get_procurement(db_path: Optional[Path] = None) -> Procurement:
    db = db_path or SettingsHolder.get().db_path
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'petagri-procurement init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return Procurement(db)


@contextmanager
def reported_errors() -> Iterator[None]:
    """Turn procurement errors into a message on stderr and a non-zero exit"""
    try:
        yield
    except ProcurementError as e:
        code = next(
            (c for kind, c in EXIT_CODES.items() if isinstance(e, kind)),
            1,
        )
        typer.echo(f"Error [{e.reason}]: {e}", err=True)
        raise typer.Exit(code) from e


def parse_items(raw: str) -> list[dict[str, Any]]:
    try:
        items = json.loads(raw)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"items must be a JSON array: {e}") from e
    if not isinstance(items, list):
        raise typer.BadParameter("items must be a JSON array")
    return items


def echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


# Initialization command


@app.command()
def init(db: DbOption = None) -> None:
    """Initialize a new procurement database"""
    db = db or SettingsHolder.get().db_path
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    Procurement(db).close()
    typer.echo(f"✓ Initialized procurement database: {db}")


# Assignment commands


@assignment_app.command("create")
def assignment_create(
    visit_id: Annotated[str, typer.Option("--visit-id", help="Visit the request comes from")],
    items: Annotated[str, typer.Option("--items", help="Requested line items (JSON array)")],
    deadline: Annotated[
        Optional[datetime],
        typer.Option("--deadline", formats=["%Y-%m-%d"], help="Last day for offerings"),
    ] = None,
    message: Annotated[Optional[str], typer.Option("--message", help="Note to partners")] = None,
    actor_id: Annotated[str, typer.Option("--actor", help="Assigning actor")] = "system",
    roles: RoleOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Create a tender assignment from a visit report"""
    proc = get_procurement(db)
    line_items = parse_items(items)

    with reported_errors():
        assignment = proc.create_assignment(
            visit_id,
            deadline.date() if deadline else None,
            line_items,
            message=message,
            actor_id=actor_id,
            actor_roles=roles or [],
        )

    if json_output:
        echo_json(assignment.model_dump(mode="json"))
        return
    typer.echo(f"✓ Created assignment: {assignment.assignment_id}")
    typer.echo(f"  Visit: {assignment.visit_id}")
    typer.echo(f"  Status: {assignment.status.value}")
    if assignment.deadline:
        typer.echo(f"  Deadline: {assignment.deadline.isoformat()}")
    typer.echo(f"  Items: {len(assignment.line_items)}")


@assignment_app.command("show")
def assignment_show(
    assignment_id: Annotated[str, typer.Option("--id", help="Assignment ID")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show an assignment and its requested line items"""
    proc = get_procurement(db)
    with reported_errors():
        assignment = proc.get_assignment(assignment_id)

    if json_output:
        echo_json(assignment.model_dump(mode="json"))
        return

    typer.echo(f"\nAssignment: {assignment.assignment_id}")
    typer.echo(f"  Visit: {assignment.visit_id}")
    typer.echo(f"  Status: {assignment.status.value}")
    typer.echo(f"  Assigned by: {assignment.assigned_by}")
    typer.echo(f"  Created: {assignment.created_at.isoformat()}")
    if assignment.deadline:
        typer.echo(f"  Deadline: {assignment.deadline.isoformat()}")
    if assignment.message:
        typer.echo(f"  Message: {assignment.message}")

    typer.echo(f"\n  Line Items ({len(assignment.line_items)}):")
    for item in assignment.line_items:
        target = f" @ {item.target_price}" if item.target_price is not None else ""
        typer.echo(f"    {item.product_name}: {item.quantity}{target}")


@assignment_app.command("list")
def assignment_list(
    status: Annotated[
        Optional[AssignmentStatus],
        typer.Option("--status", help="Filter by status"),
    ] = None,
    visit_id: Annotated[Optional[str], typer.Option("--visit-id", help="Filter by visit")] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """List assignments, newest first"""
    proc = get_procurement(db)
    assignments = list(proc.list_assignments(status=status, visit_id=visit_id))

    if json_output:
        echo_json([a.model_dump(mode="json") for a in assignments])
        return
    if not assignments:
        typer.echo("No assignments")
        return

    typer.echo(f"Assignments ({len(assignments)}):")
    for a in assignments:
        typer.echo(f"  {a.assignment_id}: visit {a.visit_id} [{a.status.value}]")


@assignment_app.command("replace-items")
def assignment_replace_items(
    assignment_id: Annotated[str, typer.Option("--id", help="Assignment ID")],
    items: Annotated[str, typer.Option("--items", help="New line items (JSON array)")],
    actor_id: Annotated[str, typer.Option("--actor", help="Acting user")] = "system",
    roles: RoleOption = None,
    db: DbOption = None,
) -> None:
    """Replace the whole line item set of an open assignment"""
    proc = get_procurement(db)
    line_items = parse_items(items)

    with reported_errors():
        assignment = proc.replace_line_items(
            assignment_id, line_items, actor_id=actor_id, actor_roles=roles or []
        )

    typer.echo(f"✓ Replaced line items: {assignment.assignment_id}")
    typer.echo(f"  Items: {len(assignment.line_items)}")


# Offering commands


@offering_app.command("submit")
def offering_submit(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    partner_id: Annotated[str, typer.Option("--partner", help="Submitting partner")],
    items: Annotated[str, typer.Option("--items", help="Offered line items (JSON array)")],
    actor_id: Annotated[
        Optional[str],
        typer.Option("--actor", help="Acting user (defaults to the partner)"),
    ] = None,
    roles: RoleOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Submit a partner's offering"""
    proc = get_procurement(db)
    line_items = parse_items(items)

    with reported_errors():
        offering = proc.submit_offering(
            assignment_id,
            partner_id,
            line_items,
            actor_id=actor_id,
            actor_roles=roles or [],
        )

    if json_output:
        echo_json(offering.model_dump(mode="json"))
        return
    typer.echo(f"✓ Submitted offering: {offering.offering_id}")
    typer.echo(f"  Partner: {offering.partner_id}")
    typer.echo(f"  Total: {offering.total_price}")


@offering_app.command("list")
def offering_list(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    partner_id: Annotated[
        Optional[str],
        typer.Option("--partner", help="Only this partner's offerings"),
    ] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """List offerings oldest first, or one partner's newest first, with their outcome"""
    proc = get_procurement(db)
    offerings = list(proc.list_offerings(assignment_id, partner_id=partner_id))

    if json_output:
        echo_json([o.model_dump(mode="json") for o in offerings])
        return
    if not offerings:
        typer.echo(f"No offerings for assignment {assignment_id}")
        return

    typer.echo(f"Offerings ({len(offerings)}):")
    for o in offerings:
        typer.echo(f"  {o.offering_id}: {o.partner_id} - {o.total_price} [{o.outcome.value}]")


@offering_app.command("summary")
def offering_summary(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Price statistics over an assignment's offerings (advisory)"""
    proc = get_procurement(db)
    with reported_errors():
        summary = proc.summarize_offerings(assignment_id)

    if json_output:
        echo_json(summary.model_dump(mode="json"))
        return
    typer.echo(f"Offerings: {summary.offering_count} from {summary.partner_count} partner(s)")
    if summary.offering_count:
        typer.echo(f"  Lowest: {summary.lowest_total}")
        typer.echo(f"  Highest: {summary.highest_total}")
        typer.echo(f"  Average: {summary.average_total}")


# Approval commands


@approval_app.command("approve")
def approval_approve(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    offering_id: Annotated[str, typer.Option("--offering-id", help="Winning offering ID")],
    actor_id: Annotated[str, typer.Option("--actor", help="Approver")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Why this offering")] = None,
    roles: RoleOption = None,
    db: DbOption = None,
) -> None:
    """Approve the winning offering (first approval wins)"""
    proc = get_procurement(db)
    with reported_errors():
        approval = proc.approve(
            assignment_id,
            offering_id,
            actor_id=actor_id,
            actor_roles=roles or [],
            reason=reason,
        )

    typer.echo(f"✓ Approved offering: {approval.offering_id}")
    typer.echo(f"  Approval: {approval.approval_id}")
    typer.echo(f"  Partner: {approval.partner_id}")


@approval_app.command("show")
def approval_show(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show the approval for an assignment"""
    proc = get_procurement(db)
    with reported_errors():
        approval = proc.get_approval(assignment_id)

    if json_output:
        echo_json(approval.model_dump(mode="json"))
        return
    typer.echo(f"\nApproval: {approval.approval_id}")
    typer.echo(f"  Offering: {approval.offering_id}")
    typer.echo(f"  Partner: {approval.partner_id}")
    typer.echo(f"  Approved by: {approval.approved_by}")
    typer.echo(f"  Approved at: {approval.approved_at.isoformat()}")
    if approval.reason:
        typer.echo(f"  Reason: {approval.reason}")


@approval_app.command("reconcile")
def approval_reconcile(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    db: DbOption = None,
) -> None:
    """Write a missing close marker for an approved assignment"""
    proc = get_procurement(db)
    with reported_errors():
        assignment = proc.reconcile(assignment_id)
    typer.echo(f"✓ Assignment {assignment.assignment_id}: {assignment.status.value}")


# Eligibility commands


@eligibility_app.command("check")
def eligibility_check(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """May a delivery note be issued for the assignment?"""
    proc = get_procurement(db)
    with reported_errors():
        report = proc.explain_eligibility(assignment_id)

    if json_output:
        echo_json(report.model_dump(mode="json"))
        return
    typer.echo(f"Eligible: {'yes' if report.eligible else 'no'}")
    typer.echo(f"  Status: {report.status.value}")
    if report.winning_partner_id:
        typer.echo(f"  Winner: {report.winning_partner_id}")


@eligibility_app.command("list")
def eligibility_list(db: DbOption = None) -> None:
    """List assignments ready for a delivery note"""
    proc = get_procurement(db)
    eligible = list(proc.list_eligible_assignments())
    if not eligible:
        typer.echo("No eligible assignments")
        return
    typer.echo(f"Eligible assignments ({len(eligible)}):")
    for assignment_id in eligible:
        typer.echo(f"  {assignment_id}")


# Delivery commands


@delivery_app.command("issue")
def delivery_issue(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    driver_id: Annotated[str, typer.Option("--driver", help="Assigned driver")],
    actor_id: Annotated[str, typer.Option("--actor", help="Issuing user")],
    roles: RoleOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Issue the delivery note for an eligible assignment"""
    proc = get_procurement(db)
    with reported_errors():
        note = proc.issue_delivery_note(
            assignment_id, driver_id, actor_id=actor_id, actor_roles=roles or []
        )

    if json_output:
        echo_json(note.model_dump(mode="json"))
        return
    typer.echo(f"✓ Issued delivery note: {note.document_number}")
    typer.echo(f"  Partner: {note.partner_id}")
    typer.echo(f"  Driver: {note.driver_id}")
    typer.echo(f"  Scheduled for: {note.scheduled_for.isoformat()}")


@delivery_app.command("show")
def delivery_show(
    assignment_id: Annotated[str, typer.Option("--assignment-id", help="Assignment ID")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show the delivery note of an assignment"""
    proc = get_procurement(db)
    with reported_errors():
        note = proc.get_delivery_note(assignment_id)

    if json_output:
        echo_json(note.model_dump(mode="json"))
        return
    typer.echo(f"\nDelivery note: {note.document_number}")
    typer.echo(f"  Status: {note.status.value}")
    typer.echo(f"  Partner: {note.partner_id}")
    typer.echo(f"  Driver: {note.driver_id}")
    typer.echo(f"  Scheduled for: {note.scheduled_for.isoformat()}")


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
