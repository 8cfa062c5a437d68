"""Decision API consumed by gateways and routing middleware."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse

from ratewarden.core.auth import verify_api_key
from ratewarden.core.rate_limit import get_decision_gate
from ratewarden.schemas.decision import DecisionRequest, DecisionResponse
from ratewarden.services.decision_gate import DecisionGate
from ratewarden.services.header_emitter import build_rate_limit_headers, status_code_for
from ratewarden.services.models import Identity

router = APIRouter(tags=["Decisions"], dependencies=[Depends(verify_api_key)])


@router.post(
    "/decisions",
    response_model=DecisionResponse,
    responses={429: {"model": DecisionResponse, "description": "Request rejected"}},
)
async def create_decision(
    payload: DecisionRequest,
    gate: Annotated[DecisionGate, Depends(get_decision_gate)],
) -> JSONResponse:
    """Consume one attempt for the subject and return the decision.

    Responds 200 when the request may proceed and 429 when it must be
    rejected. A counter store outage never produces a 5xx here: the
    configured fail mode decides, and the body reports ``degraded=true``.
    """
    identity = Identity(subject_id=payload.subject_id, tier=payload.tier)
    result = await gate.admit(identity, payload.target)

    return JSONResponse(
        status_code=status_code_for(result),
        content=DecisionResponse.from_result(result).model_dump(mode="json"),
        headers=build_rate_limit_headers(result),
    )


@router.get("/decisions/status", response_model=DecisionResponse)
async def get_decision_status(
    gate: Annotated[DecisionGate, Depends(get_decision_gate)],
    subject_id: Annotated[str, Query(min_length=1)],
    target: Annotated[str, Query(min_length=1)],
    tier: Annotated[str | None, Query()] = None,
) -> DecisionResponse:
    """Report the subject's current window without consuming an attempt."""
    result = await gate.status(Identity(subject_id=subject_id, tier=tier), target)
    return DecisionResponse.from_result(result)


@router.delete("/decisions", status_code=status.HTTP_204_NO_CONTENT)
async def reset_decisions(
    gate: Annotated[DecisionGate, Depends(get_decision_gate)],
    subject_id: Annotated[str, Query(min_length=1)],
    target: Annotated[str, Query(min_length=1)],
    tier: Annotated[str | None, Query()] = None,
) -> Response:
    """Clear the subject's window for ``target`` (administrative unblock)."""
    await gate.reset(Identity(subject_id=subject_id, tier=tier), target)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
