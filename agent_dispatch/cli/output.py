"""CLI output formatters for Rich tables and JSON.

Human-readable Rich output by default, machine-parseable JSON with
``--json``. All formatting goes through these functions so the commands
stay thin.
"""

import json
from typing import Any

from rich.console import Console
from rich.table import Table

console = Console()

STATUS_COLORS = {
    "success": "green",
    "assigned_to_default": "yellow",
    "skipped": "dim",
    "error": "red",
}


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def format_outcome(outcome: dict[str, Any], as_json: bool = False) -> str:
    """Format an assignment outcome.

    Args:
        outcome: AssignmentOutcome.to_dict() payload.
        as_json: If True, return JSON instead of a table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(outcome, indent=2)

    status = outcome.get("status", "unknown")
    color = STATUS_COLORS.get(status, "white")
    table = Table(title="Assignment", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", f"[{color}]{status}[/{color}]")
    table.add_row("Reason", outcome.get("reason") or "-")
    table.add_row("Assignee", str(outcome.get("assigneeId", "-")))
    table.add_row("Rule", outcome.get("selectionRule") or "-")

    backlog = outcome.get("additionalAssignments")
    if backlog:
        table.add_row(
            "Backlog",
            f"{backlog['assignedCount']} assigned, {backlog['failedCount']} failed"
            + (f" ({backlog['reason']})" if backlog.get("reason") else ""),
        )
    return _render(table)


def format_sweep(result: dict[str, Any], as_json: bool = False) -> str:
    """Format a reclamation sweep result, one row per tenant."""
    if as_json:
        return json.dumps(result, indent=2)

    if not result.get("accounts"):
        return "No tenants swept."

    table = Table(
        title=f"Reclamation sweep: {result['unassignedCount']} unassigned",
        show_lines=True,
    )
    table.add_column("Account", style="cyan", justify="right")
    table.add_column("Prefix")
    table.add_column("Unassigned", justify="right", style="green")
    table.add_column("Error", style="red")
    for account in result["accounts"]:
        table.add_row(
            str(account["accountId"]),
            account["prefix"],
            str(account["unassignedCount"]),
            account.get("error") or "",
        )
    return _render(table)


def format_logged_users(result: dict[str, Any], as_json: bool = False) -> str:
    """Format the logged-users query."""
    if as_json:
        return json.dumps(result, indent=2)

    users = result.get("data", [])
    if not users:
        return "No agents online."

    table = Table(title=f"Online agents ({len(users)})")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Open", justify="right")
    if "domain" in result:
        table.add_column("Account", justify="right")
    for user in users:
        row = [
            str(user["id"]),
            user.get("name") or "-",
            user.get("email") or "-",
            str(user.get("open_conversations", 0)),
        ]
        if "domain" in result:
            row.append(str(user.get("chatwootAccountId", "-")))
        table.add_row(*row)
    return _render(table)
