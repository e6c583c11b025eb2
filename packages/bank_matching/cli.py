# ruff: noqa: I001
"""CLI for the ``bank_matching`` package.

A Typer application over the engine operations. ``.env`` in the current
directory is loaded with ``python-dotenv`` (without overriding the
environment) before any command runs, so ``DATABASE_URL`` and the
``BANK_MATCHING_*`` settings can live there. Business logic lives in
``bank_matching.api`` and the modules it calls; commands only parse options
and render results.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .logging_setup import configure_logging

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Preview, apply and derive bank-transaction matching rules.",
)

_console = Console()

# Module-level option objects keep calls out of parameter defaults (ruff B008).
ORG_OPTION: OptionInfo = typer.Option(..., "--org", help="Organization id to scope reads/writes.")
DB_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
ACTOR_OPTION: OptionInfo = typer.Option(
    None, "--actor", help="User id recorded as matched_by."
)
TX_OPTION: OptionInfo = typer.Option(
    None, "--tx", help="Transaction id; repeat for several."
)


def _emit(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    if not payload.get("success", False):
        raise typer.Exit(1)


def _parse_condition_arg(raw: str) -> dict[str, str]:
    """Parse ``field:operator:value``; the value may itself contain colons."""

    parts = raw.split(":", 2)
    if len(parts) != 3:
        raise typer.BadParameter(f"expected field:operator:value, got {raw!r}")
    field, operator, value = parts
    return {"field": field.strip(), "operator": operator.strip(), "value": value}


# ---- Commands -----------------------------------------------------------------


@app.command("preview-rule")
def preview_rule_cmd(
    rule_id: str = typer.Argument(..., help="Rule to evaluate."),
    *,
    org: str = ORG_OPTION,
    database_url: str | None = DB_URL_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the raw response."),
) -> None:
    """Show the unmatched transactions a rule would classify."""

    from .api import handle_apply_rule

    resp = handle_apply_rule(
        {"ruleId": rule_id, "preview": True},
        organization_id=org,
        database_url=database_url,
    )
    if as_json or not resp.get("success"):
        _emit(resp)
        return

    table = Table(title=f"Rule {rule_id}: {resp['total']} match(es)")
    for col in ("id", "booking_date", "amount_cents", "counterpart_name", "purpose"):
        table.add_column(col)
    for tx in resp["matches"]:
        table.add_row(
            tx["id"],
            tx["booking_date"],
            str(tx["amount_cents"]),
            tx.get("counterpart_name") or "",
            tx.get("purpose") or "",
        )
    _console.print(table)


@app.command("apply-rule")
def apply_rule_cmd(
    rule_id: str = typer.Argument(..., help="Rule to apply."),
    *,
    org: str = ORG_OPTION,
    tx: list[str] | None = TX_OPTION,
    apply_all: bool = typer.Option(
        False, "--all", help="Apply to every transaction the rule currently matches."
    ),
    actor: str | None = ACTOR_OPTION,
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Apply a rule to selected (or all matching) unmatched transactions."""

    from .api import handle_apply_rule

    if not tx and not apply_all:
        typer.echo("Error: pass --tx ID (repeatable) or --all.", err=True)
        raise typer.Exit(2)
    payload: dict[str, Any] = {"ruleId": rule_id, "preview": False}
    if not apply_all:
        payload["transactionIds"] = list(tx or [])
    _emit(
        handle_apply_rule(payload, organization_id=org, actor=actor, database_url=database_url)
    )


@app.command("match")
def match_cmd(
    *,
    org: str = ORG_OPTION,
    tx: list[str] | None = TX_OPTION,
    tenant: str | None = typer.Option(None, "--tenant", help="Tenant id to assign."),
    lease: str | None = typer.Option(None, "--lease", help="Lease id to assign."),
    tx_type: str | None = typer.Option(None, "--type", help="Transaction type to book as."),
    building: str | None = typer.Option(None, "--building", help="Building id to assign."),
    create_rule: bool = typer.Option(
        False, "--create-rule", help="Derive a standing rule from the counterpart names."
    ),
    actor: str | None = ACTOR_OPTION,
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Manually match transactions to a tenant, lease, type and/or building."""

    from .api import handle_match

    payload = {
        "transactionIds": list(tx or []),
        "tenantId": tenant,
        "leaseId": lease,
        "transactionType": tx_type,
        "buildingId": building,
        "createRule": create_rule,
    }
    _emit(handle_match(payload, organization_id=org, actor=actor, database_url=database_url))


@app.command("create-rule")
def create_rule_cmd(
    *,
    org: str = ORG_OPTION,
    name: str = typer.Option(..., "--name", help="Rule name."),
    condition: list[str] = typer.Option(
        ..., "--condition", help="field:operator:value (repeatable, AND-combined)."
    ),
    action: str | None = typer.Option(
        None, "--action", help="assign_tenant | book_as | ignore (derived when omitted)."
    ),
    tenant: str | None = typer.Option(None, "--tenant"),
    lease: str | None = typer.Option(None, "--lease"),
    tx_type: str | None = typer.Option(None, "--type"),
    building: str | None = typer.Option(None, "--building"),
    priority: int = typer.Option(50, "--priority", help="Higher wins when rules overlap."),
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Create a rule from the command line."""

    from db.client import session_scope
    from pydantic import ValidationError

    from .errors import EmptyTargetError, MatchingError
    from .models import RuleAction, RuleTarget, parse_conditions
    from .persistence import create_rule

    try:
        conditions = parse_conditions(_parse_condition_arg(c) for c in condition)
        target = RuleTarget(
            tenant_id=tenant, lease_id=lease, transaction_type=tx_type, building_id=building
        )
        if action is None:
            resolved = RuleAction.ASSIGN_TENANT if target.tenant_id else RuleAction.BOOK_AS
        else:
            resolved = RuleAction(action)
        if resolved is not RuleAction.IGNORE and target.is_empty:
            raise EmptyTargetError()
        with session_scope(database_url=database_url) as session:
            rule = create_rule(
                session,
                organization_id=org,
                name=name,
                conditions=conditions,
                target=target,
                action=resolved,
                priority=priority,
            )
    except (MatchingError, ValidationError, ValueError) as e:
        _emit({"success": False, "error": str(e)})
        return
    _emit({"success": True, "rule": rule.to_dict()})


@app.command("list-rules")
def list_rules_cmd(
    *,
    org: str = ORG_OPTION,
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """List the organization's rules, highest priority first.

    Rules with invalid stored conditions are left out (and logged).
    """

    from db.client import session_scope

    from .errors import MatchingError
    from .persistence import list_rules

    try:
        with session_scope(database_url=database_url) as session:
            rules = list_rules(session, organization_id=org)
    except MatchingError as e:
        _emit({"success": False, "error": str(e)})
        return

    table = Table(title=f"{len(rules)} rule(s)")
    for col in ("id", "name", "priority", "active", "conditions", "action", "matches"):
        table.add_column(col)
    for r in rules:
        table.add_row(
            r.id,
            r.name,
            str(r.priority),
            "yes" if r.is_active else "no",
            " AND ".join(c.describe() for c in r.conditions),
            str(r.action),
            str(r.match_count),
        )
    _console.print(table)


@app.command("explain")
def explain_cmd(
    transaction_id: str = typer.Argument(..., help="Transaction to explain."),
    *,
    org: str = ORG_OPTION,
    database_url: str | None = DB_URL_OPTION,
) -> None:
    """Show which active rule would classify a transaction.

    Only ``unmatched`` transactions are candidates for rule matching; for any
    other status the answer says so and evaluates no rule.
    """

    from db.client import session_scope

    from .config import load_settings
    from .errors import AmbiguousRuleMatch, MatchingError
    from .matcher import find_matching_rules, select_rule
    from .models import MatchStatus
    from .persistence import list_rules, load_transactions

    settings = load_settings()
    try:
        with session_scope(database_url=database_url) as session:
            found = load_transactions(
                session, organization_id=org, transaction_ids=[transaction_id]
            )
            rules = list_rules(session, organization_id=org, active_only=True)
    except MatchingError as e:
        _emit({"success": False, "error": str(e)})
        return

    tx = found.get(transaction_id)
    if tx is None:
        _emit({"success": False, "error": f"Transaction not found: {transaction_id!r}"})
        return
    if tx.match_status is not MatchStatus.UNMATCHED:
        _emit(
            {
                "success": True,
                "transaction": tx.to_dict(),
                "candidate": False,
                "reason": f"transaction is {tx.match_status}; only unmatched ones are matched",
                "matching_rules": [],
                "selected_rule": None,
            }
        )
        return

    fallback = settings.booking_text_fallback
    matching = [r.id for r in find_matching_rules(rules, tx, booking_text_fallback=fallback)]
    try:
        chosen = select_rule(rules, tx, booking_text_fallback=fallback)
    except AmbiguousRuleMatch as e:
        _emit({"success": False, "error": str(e), "matching_rules": matching})
        return
    _emit(
        {
            "success": True,
            "transaction": tx.to_dict(),
            "candidate": True,
            "matching_rules": matching,
            "selected_rule": chosen.to_dict() if chosen is not None else None,
        }
    )


@app.command("init-db")
def init_db_cmd(database_url: str | None = DB_URL_OPTION) -> None:
    """Create the banking tables directly from the ORM (local/dev databases).

    Production schemas are managed by the Alembic migrations in ``libs/db``.
    """

    from db import Base
    from db.client import get_engine

    Base.metadata.create_all(bind=get_engine(database_url=database_url))
    typer.echo("Tables created.")


@app.callback()
def _root() -> None:
    """Load ``.env`` and configure logging before any command."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:  # pragma: no cover - console script entry
    app()


if __name__ == "__main__":  # pragma: no cover
    app()
