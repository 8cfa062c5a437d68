"""Request/response schemas for the decision API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ratewarden.services.header_emitter import retry_after_seconds
from ratewarden.services.models import GateOutcome, GateResult, PlanTier, PolicySource


class DecisionRequest(BaseModel):
    """A gateway asking whether one request may proceed."""

    subject_id: str = Field(
        ...,
        min_length=1,
        description="Authenticated principal or network origin being limited",
    )
    tier: str | None = Field(
        None,
        description="Plan tier of the subject; unknown or missing tiers use the lowest tier",
    )
    target: str = Field(
        ...,
        min_length=1,
        description="Route being accessed, used to match route overrides",
    )


class DecisionResponse(BaseModel):
    """Outcome of a decision or status lookup."""

    allowed: bool
    outcome: GateOutcome
    degraded: bool
    limit: int = Field(..., ge=1)
    remaining: int | None = Field(
        None,
        ge=0,
        description="Attempts left in the window; null when the store could not be consulted",
    )
    reset_ms: int | None = Field(
        None,
        ge=0,
        description="Milliseconds until the oldest counted attempt expires; null when unknown",
    )
    window_ms: int = Field(..., ge=1)
    retry_after_seconds: int | None = None
    tier: PlanTier
    scope: str
    policy_source: PolicySource

    @classmethod
    def from_result(cls, result: GateResult) -> "DecisionResponse":
        return cls(
            allowed=result.allowed,
            outcome=result.outcome,
            degraded=result.degraded,
            limit=result.policy.limit,
            remaining=result.decision.remaining,
            reset_ms=result.decision.reset_ms,
            window_ms=result.policy.window_ms,
            retry_after_seconds=retry_after_seconds(result),
            tier=result.policy.tier,
            scope=result.policy.scope,
            policy_source=result.policy.source,
        )


class BudgetView(BaseModel):
    limit: int
    window_ms: int


class PolicyTableResponse(BaseModel):
    """Configured tier budgets and route overrides."""

    fail_mode: str
    tiers: dict[str, BudgetView]
    route_overrides: dict[str, BudgetView]
