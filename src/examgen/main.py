import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from examgen.api import router as exam_router
from examgen.api.exam import error_body, status_for_error
from examgen.config import get_settings
from examgen.errors import ExamGenError
from examgen.generation import get_llm_status
from examgen.logging_config import configure_logging
from examgen.telemetry import emit_app_startup_event, emit_exception, log_event

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Exam Generator API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(exam_router)


@app.on_event("startup")
async def _startup_event() -> None:
    emit_app_startup_event()


@app.exception_handler(ExamGenError)
async def _exam_error_handler(request: Request, exc: ExamGenError) -> JSONResponse:
    status_code = status_for_error(exc)
    log_event(
        LOGGER,
        "request.error",
        level="error" if status_code >= 500 else "warning",
        details={"path": request.url.path, "status": status_code, "error": exc.error},
        exc=exc if status_code >= 500 else exc.details,
    )
    return JSONResponse(status_code=status_code, content=error_body(exc))


@app.exception_handler(Exception)
async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    emit_exception(module=__name__, error=exc, suggestion=f"unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc) or exc.__class__.__name__},
    )


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Report unhealthy until a model endpoint is configured."""
    status = get_llm_status()
    if not status.configured:
        raise HTTPException(status_code=503, detail=status.error or "LLM is not configured")
    return "ok"


@app.get("/healthz/model")
def model_healthcheck() -> dict[str, object]:
    status = get_llm_status()
    payload: dict[str, object] = {
        "configured": status.configured,
        "name": status.model_name,
        "base_url": status.base_url,
    }
    if status.error:
        payload["reason"] = status.error
    return payload
