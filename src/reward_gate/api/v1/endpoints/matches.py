"""Match submission endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from reward_gate.api.v1.dependencies import PipelineDep
from reward_gate.schemas import MatchSubmitRequest, MatchSubmitResponse
from reward_gate.services.errors import InfrastructureError, StructuralError

RETRY_AFTER_SECONDS = 5

router = APIRouter(prefix="/matches", tags=["matches"])


@router.post(
    "/submit",
    response_model=MatchSubmitResponse,
    response_model_exclude_none=True,
)
async def submit_match(
    payload: MatchSubmitRequest,
    pipeline: PipelineDep,
    x_request_id: Annotated[str | None, Header(max_length=64)] = None,
) -> MatchSubmitResponse:
    """Validate a finished match and grant its reward if it is accepted.

    Accepted and rejected submissions both return 200 with `allowed` set
    accordingly. Malformed requests return 400 or 422; an unavailable store
    or authority returns 503 with `Retry-After`.
    """
    try:
        decision = await pipeline.process(payload.to_submission(), request_id=x_request_id)
    except StructuralError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except InfrastructureError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"reasonCode": exc.reason_code.value, "message": str(exc)},
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        ) from exc
    return MatchSubmitResponse.from_decision(decision)
