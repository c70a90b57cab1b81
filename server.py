import logging
import time
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from classes import settings
from classes.agent_models import CommandRequest
from classes.agent_pipeline import AgentPipeline
from classes.audit_logger import AuditLogger
from classes.automations import AutomationRunner
from classes.db_helpers import create_session_factory
from classes.errors import EntityNotFoundError
from classes.rate_limiter import AI_AGENT_RATE_LIMITER, get_client_ip

logger = logging.getLogger("opsync_agent")

app = FastAPI()

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RunAutomation(BaseModel):
    id: Optional[str] = None


@lru_cache(maxsize=1)
def get_session_factory():
    return create_session_factory()


def get_pipeline(session_factory=Depends(get_session_factory)) -> AgentPipeline:
    return AgentPipeline(session_factory, rate_limiter=AI_AGENT_RATE_LIMITER)


def get_audit_logger(session_factory=Depends(get_session_factory)) -> AuditLogger:
    return AuditLogger(session_factory)


def get_automation_runner(
    session_factory=Depends(get_session_factory),
    pipeline: AgentPipeline = Depends(get_pipeline),
) -> AutomationRunner:
    return AutomationRunner(session_factory, pipeline)


def _status_for(response) -> int:
    if response.success:
        return 200
    if response.rate_limited:
        return 429
    if response.missing_instruction:
        return 400
    if response.backend_failure or response.config_error:
        return 500
    return 200


@app.post("/ai-agent")
def ai_agent(body: CommandRequest, request: Request, pipeline: AgentPipeline = Depends(get_pipeline)):
    caller_id = get_client_ip(request.headers)
    response = pipeline.execute_command(body, caller_id=caller_id)

    headers = {}
    if response.rate_limit is not None:
        limit = pipeline.rate_limiter.max_requests if pipeline.rate_limiter else settings.RATE_LIMIT_MAX_REQUESTS
        headers["X-RateLimit-Limit"] = str(limit)
        headers["X-RateLimit-Remaining"] = str(response.rate_limit.remaining)
        headers["X-RateLimit-Reset"] = str(int(time.time()) + response.rate_limit.reset_in_seconds)
        if response.rate_limited:
            headers["Retry-After"] = str(response.rate_limit.reset_in_seconds)

    return JSONResponse(content=response.to_wire(), status_code=_status_for(response), headers=headers)


@app.get("/ai-logs")
def ai_logs(limit: int = 50, offset: int = 0, audit: AuditLogger = Depends(get_audit_logger)):
    try:
        return {"data": audit.list_logs(limit=limit, offset=offset)}
    except Exception as e:
        logger.exception("GET /ai-logs failed")
        raise HTTPException(status_code=500, detail=f"Failed to fetch logs: {e}")


@app.post("/ai-automations/run")
def run_automation(body: RunAutomation, runner: AutomationRunner = Depends(get_automation_runner)):
    if not body.id:
        raise HTTPException(status_code=400, detail="id is required")
    try:
        return runner.run_one(body.id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/ai-automations/execute")
def execute_automations(
    x_cron_secret: Optional[str] = Header(None),
    runner: AutomationRunner = Depends(get_automation_runner),
):
    if settings.CRON_SECRET and x_cron_secret != settings.CRON_SECRET:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return runner.run_due()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
