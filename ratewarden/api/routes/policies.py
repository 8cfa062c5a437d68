from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ratewarden.core.rate_limit import enforce_rate_limit, get_decision_gate
from ratewarden.schemas.decision import BudgetView, PolicyTableResponse
from ratewarden.services.decision_gate import DecisionGate

router = APIRouter(tags=["Policies"])


@router.get(
    "/policies",
    response_model=PolicyTableResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def list_policies(
    gate: Annotated[DecisionGate, Depends(get_decision_gate)],
) -> PolicyTableResponse:
    """List tier budgets and route overrides.

    This endpoint is itself rate limited per caller, so its responses carry
    X-RateLimit-* headers.
    """
    table = gate.resolver.table
    return PolicyTableResponse(
        fail_mode=gate.fail_mode.value,
        tiers={
            tier.value: BudgetView(limit=budget.limit, window_ms=budget.window_ms)
            for tier, budget in table.tiers.items()
        },
        route_overrides={
            route: BudgetView(limit=budget.limit, window_ms=budget.window_ms)
            for route, budget in table.route_overrides.items()
        },
    )
