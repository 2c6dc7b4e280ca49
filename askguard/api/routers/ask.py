"""POST /ask and POST /ask/explain -- the question endpoints."""
from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from askguard.copilot.models import DateRange
from askguard.copilot.service import AskResult, ask as service_ask, explain as service_explain
from askguard.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

SERVER_ERROR = "Server error while answering question."


class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=1000, description="Natural-language question")
    restaurant_id: int | None = Field(None, ge=0, description="Restaurant id; a restaurant named in the question wins")
    mode: str | None = Field(None, description="mock | openai | anthropic (default: LLM_PROVIDER)")
    execute: bool = Field(True, description="If false, stop after the scope check")


class AskResponse(BaseModel):
    question: str
    answer: str
    sql: str
    provenance: str
    intent: str | None
    rows: list[dict]
    restaurant_id: int
    tenant_source: str
    date_range: DateRange | None
    executed: bool
    latency_ms: int


class ExplainResponse(BaseModel):
    question: str
    sql: str
    provenance: str
    intent: str | None
    restaurant_id: int
    tenant_source: str
    date_range: DateRange | None
    guard_ok: bool
    guard_reason: str | None
    scope_ok: bool


def _error_response(result: AskResult) -> JSONResponse:
    if result.failure == "guard":
        return JSONResponse(
            status_code=400,
            content={"error": result.error, "reason": result.reason, "sql_attempt": result.sql_attempt},
        )
    if result.failure == "scope":
        return JSONResponse(
            status_code=400,
            content={"error": result.error, "restaurant_id": result.tenant_id,
                     "sql_attempt": result.sql_attempt},
        )
    return JSONResponse(status_code=500, content={"error": result.error, "detail": result.detail})


@router.post("", response_model=AskResponse)
def ask_endpoint(req: AskRequest):
    """Full pipeline: question -> SQL -> guard -> tenant scope -> execute -> answer."""
    try:
        result = service_ask(req.question, tenant_id=req.restaurant_id, mode=req.mode,
                             execute=req.execute)
    except ValueError as exc:
        # includes TenantResolutionError
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except Exception as exc:
        logger.exception("Ask failed")
        return JSONResponse(status_code=500, content={"error": SERVER_ERROR, "detail": str(exc)})

    if not result.success:
        return _error_response(result)

    return AskResponse(
        question=req.question,
        answer=result.answer,
        sql=result.sql,
        provenance=result.provenance.value,
        intent=result.statement.intent,
        rows=result.rows,
        restaurant_id=result.tenant_id,
        tenant_source=result.tenant.source,
        date_range=result.date_range,
        executed=result.executed,
        latency_ms=result.latency_ms,
    )


@router.post("/explain", response_model=ExplainResponse)
def explain_endpoint(req: AskRequest):
    """Dry-run: the SQL that would run, with guard and scope verdicts."""
    try:
        result = service_explain(req.question, tenant_id=req.restaurant_id, mode=req.mode)
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except Exception as exc:
        logger.exception("Explain failed")
        return JSONResponse(status_code=500, content={"error": SERVER_ERROR, "detail": str(exc)})

    return ExplainResponse(
        question=req.question,
        sql=result.sql,
        provenance=result.provenance.value,
        intent=result.statement.intent,
        restaurant_id=result.tenant_id,
        tenant_source=result.tenant.source,
        date_range=result.date_range,
        guard_ok=result.verdict.ok,
        guard_reason=result.verdict.reason,
        scope_ok=bool(result.scope_ok),
    )
