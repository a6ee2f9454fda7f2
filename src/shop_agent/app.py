"""FastAPI entry for the agent action gateway."""

from __future__ import annotations

import uuid

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from shop_contracts.schemas import AgentRequest
from shop_contracts.tools import ALLOWED_TOOLS

from .context import GatewayContext, build_context
from .errors import GatewayError, PolicyViolation, ScopeViolation, UnsupportedOperation, ValidationError
from .executor import AgentReply, ConfirmRequest, handle_agent, handle_confirm
from .logging import configure_logging, get_logger
from .schema_check import assert_schema_consistency
from .settings import get_settings

app = FastAPI(title="Shop Agent Gateway", version="0.1.0")
logger = get_logger("app")

STATUS_BY_CODE = {
    ValidationError.code: 422,
    PolicyViolation.code: 403,
    ScopeViolation.code: 403,
    UnsupportedOperation.code: 404,
}


@app.on_event("startup")
def startup() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    # Drift is fatal: the server must not accept requests with disagreeing contracts.
    assert_schema_consistency(settings)
    app.state.context = build_context(settings)
    logger.info(
        "gateway_config",
        extra={
            "extra": {
                "openai_model": settings.openai_model,
                "mock_llm": settings.mock_llm,
                "mongo_database": settings.mongo_database,
                "commerce_base_url": settings.commerce_base_url,
                "agent_specs_dir": str(app.state.context.specs.directory),
                "trace_enabled": settings.trace_enabled,
            }
        },
    )


def get_context(request: Request) -> GatewayContext:
    return request.app.state.context


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(exc.code, 400),
        content={"success": False, "error": {"code": exc.code, "message": exc.message, "details": exc.details}},
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/agent-card")
def agent_card() -> dict[str, object]:
    return {
        "name": "shop-agent-gateway",
        "version": "0.1.0",
        "description": "Agent action gateway: policy, intent routing, query sandbox and tool validation.",
        "endpoints": {"agent": "/v1/agent", "confirm": "/v1/tools/{tool}/confirm"},
        "tools": list(ALLOWED_TOOLS),
    }


@app.post("/v1/agent", response_model=AgentReply)
async def agent(payload: AgentRequest, request: Request, context: GatewayContext = Depends(get_context)):
    # Preserve an incoming request id only when it is a UUID; responses require one.
    request_id = _request_id(request.headers.get("x-request-id"))
    return await handle_agent(payload, context, request_id)


@app.post("/v1/tools/{tool}/confirm")
async def confirm_tool(
    tool: str,
    payload: ConfirmRequest,
    request: Request,
    context: GatewayContext = Depends(get_context),
):
    trace_id = request.headers.get("x-trace-id") or payload.request_id
    response = await handle_confirm(tool, payload, context, trace_id)
    return response


def _request_id(header: str | None) -> str:
    if header:
        try:
            return str(uuid.UUID(header))
        except ValueError:
            logger.info("request_id_ignored", extra={"extra": {"header": header[:64]}})
    return str(uuid.uuid4())
