"""Request-shaped entry points for the surrounding application.

Two operations are exposed, each taking a JSON-like mapping and returning a
JSON-serializable dict:

- :func:`handle_apply_rule`: ``{ruleId, preview, transactionIds?}``
- :func:`handle_match`: ``{transactionIds | transactionId, tenantId?,
  leaseId?, transactionType?, buildingId?, createRule}``

Both run in one session scope (commit on success, rollback on error) and
answer either a full success payload or ``{"success": False, "error": ...}``,
never a partial result.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from db.client import session_scope
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .bulk import apply_bulk
from .config import EngineSettings, load_settings
from .errors import MatchingError
from .logging_setup import get_logger
from .models import RuleTarget
from .retroactive import apply_rule, preview_rule

logger = get_logger("bank_matching.api")


# ---------------------------
# Request models
# ---------------------------


class ApplyRuleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rule_id: str = Field(alias="ruleId", min_length=1)
    preview: bool = False
    transaction_ids: list[str] | None = Field(default=None, alias="transactionIds")


class MatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transaction_ids: list[str] = Field(default_factory=list, alias="transactionIds")
    transaction_id: str | None = Field(default=None, alias="transactionId")
    tenant_id: str | None = Field(default=None, alias="tenantId")
    lease_id: str | None = Field(default=None, alias="leaseId")
    transaction_type: str | None = Field(default=None, alias="transactionType")
    building_id: str | None = Field(default=None, alias="buildingId")
    create_rule: bool = Field(default=False, alias="createRule")

    def ids(self) -> list[str]:
        if self.transaction_ids:
            return list(self.transaction_ids)
        return [self.transaction_id] if self.transaction_id else []

    def target(self) -> RuleTarget:
        return RuleTarget(
            tenant_id=self.tenant_id,
            lease_id=self.lease_id,
            transaction_type=self.transaction_type,
            building_id=self.building_id,
        )


def _failure(error: Exception | str) -> dict[str, Any]:
    return {"success": False, "error": str(error)}


# ---------------------------
# Handlers
# ---------------------------


def handle_apply_rule(
    payload: Mapping[str, Any],
    *,
    organization_id: str,
    actor: str | None = None,
    database_url: str | None = None,
    settings: EngineSettings | None = None,
) -> dict[str, Any]:
    """Preview or apply a rule retroactively.

    Preview answers ``{success, matches, total}``; apply answers
    ``{success, applied, skipped, failed}``.
    """

    try:
        req = ApplyRuleRequest.model_validate(payload)
    except ValidationError as e:
        return _failure(e)
    settings = settings or load_settings()

    try:
        with session_scope(database_url=database_url) as session:
            if req.preview:
                matches = preview_rule(
                    session,
                    rule_id=req.rule_id,
                    organization_id=organization_id,
                    transaction_ids=req.transaction_ids,
                    settings=settings,
                )
                return {
                    "success": True,
                    "matches": [tx.to_dict() for tx in matches],
                    "total": len(matches),
                }
            result = apply_rule(
                session,
                rule_id=req.rule_id,
                organization_id=organization_id,
                transaction_ids=req.transaction_ids,
                actor=actor,
                settings=settings,
            )
    except MatchingError as e:
        return _failure(e)
    except SQLAlchemyError as e:
        logger.exception("Rule %s: store error", req.rule_id)
        return _failure(f"store error: {e.__class__.__name__}")

    return {
        "success": True,
        "applied": result.applied,
        "skipped": result.skipped,
        "failed": result.failed,
    }


def handle_match(
    payload: Mapping[str, Any],
    *,
    organization_id: str,
    actor: str | None = None,
    database_url: str | None = None,
    settings: EngineSettings | None = None,
) -> dict[str, Any]:
    """Manually match one or more transactions, optionally deriving a rule.

    Answers ``{success, updated, skipped, failed, rule}`` where ``rule`` is
    ``{id, name, conditions}`` or ``None``.
    """

    try:
        req = MatchRequest.model_validate(payload)
        target = req.target()
    except ValidationError as e:
        return _failure(e)
    settings = settings or load_settings()

    try:
        with session_scope(database_url=database_url) as session:
            result = apply_bulk(
                session,
                organization_id=organization_id,
                transaction_ids=req.ids(),
                target=target,
                create_rule=req.create_rule,
                actor=actor,
                settings=settings,
            )
    except MatchingError as e:
        return _failure(e)
    except SQLAlchemyError as e:
        logger.exception("Bulk match: store error")
        return _failure(f"store error: {e.__class__.__name__}")

    rule = None
    if result.rule is not None:
        rule = {
            "id": result.rule.id,
            "name": result.rule.name,
            "conditions": [c.model_dump(mode="json") for c in result.rule.conditions],
        }
    return {
        "success": True,
        "updated": result.updated,
        "skipped": result.skipped,
        "failed": result.failed,
        "rule": rule,
    }


__all__ = [
    "ApplyRuleRequest",
    "MatchRequest",
    "handle_apply_rule",
    "handle_match",
]
