"""FastAPI webhook receiver for JotForm submissions."""

from __future__ import annotations

import hmac
import logging
import uuid
from collections.abc import Mapping
from typing import Any

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from core.config import Settings, load_settings
from core.ingest.models import RawRecord
from core.ingest.normalizer import FieldSpec
from core.orchestrator.pipeline import CycleOptions, run_cycle
from core.orchestrator.wiring import (
    build_audit_sink,
    build_field_spec,
    build_jotform_source,
    build_lock,
    build_renderer,
)
from core.output.lock import GenerationLock
from core.output.writer import ArtifactWriter
from core.render.base import TemplateRenderer
from core.sources.base import AuditSink, StaticRecordSource
from core.sources.jotform import (
    flatten_submission,
    has_submission_content,
    parse_webhook_payload,
)
from core.utils.errors import ConfigurationError, LockContentionError, SourceFetchError
from core.utils.log_events import log_event

app = FastAPI(title="worksheet-agent webhook", version="0.1.0")
logger = logging.getLogger("worksheet.api")

REQUEST_ID_HEADER = "X-Worksheet-Request-Id"
WEBHOOK_SOURCE_NAME = "jotform_webhook"


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        log_event(
            logger,
            logging.ERROR,
            "error",
            request_id=request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.post("/jotform-webhook", response_model=None)
async def jotform_webhook(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
    """Accept one submission push and generate its document in the background.

    The generation lock is taken before answering, so a concurrent batch or
    poll cycle turns this call into a 503 that JotForm will retry.
    """

    request_id = _request_id_from_request(request)
    settings = get_settings()

    if not _secret_matches(settings.webhook_secret, request.query_params.get("secret")):
        log_event(logger, logging.WARNING, "webhook_rejected", request_id=request_id)
        return _error_response(
            status_code=401,
            error_code="UNAUTHORIZED",
            message="invalid webhook secret",
            request_id=request_id,
        )

    payload = await _read_payload(request)
    if payload is None:
        return _error_response(
            status_code=400,
            error_code="INVALID_PAYLOAD",
            message="request body must be form data or a JSON object",
            request_id=request_id,
        )

    try:
        renderer = build_renderer(settings.template_path)
        field_spec = build_field_spec(settings)
        audit_sink = build_audit_sink(settings)
    except ConfigurationError as exc:
        log_event(
            logger,
            logging.ERROR,
            "webhook_misconfigured",
            request_id=request_id,
            setting=exc.setting,
            error=str(exc),
        )
        return _error_response(
            status_code=500,
            error_code="CONFIGURATION_ERROR",
            message=str(exc),
            request_id=request_id,
            detail={"setting": exc.setting},
        )

    submission_id, body = parse_webhook_payload(payload)
    if submission_id is None and not has_submission_content(body):
        log_event(logger, logging.WARNING, "webhook_empty_payload", request_id=request_id)
        return _error_response(
            status_code=400,
            error_code="INVALID_PAYLOAD",
            message="request body carries no submission id, answers or fields",
            request_id=request_id,
        )

    record = await run_in_threadpool(_load_record, settings, submission_id, body, request_id)

    lock = build_lock(settings)
    try:
        lock.acquire()
    except LockContentionError as exc:
        log_event(
            logger,
            logging.WARNING,
            "webhook_lock_busy",
            request_id=request_id,
            submission_id=submission_id,
            lock_path=str(exc.lock_path),
        )
        return _error_response(
            status_code=503,
            error_code="GENERATION_BUSY",
            message="another generation run is active",
            request_id=request_id,
            extra_headers={"Retry-After": str(max(1, int(settings.poll_interval_seconds)))},
        )

    background_tasks.add_task(
        _generate_in_background,
        record=record,
        settings=settings,
        renderer=renderer,
        field_spec=field_spec,
        audit_sink=audit_sink,
        lock=lock,
        request_id=request_id,
    )
    log_event(
        logger,
        logging.INFO,
        "webhook_accepted",
        request_id=request_id,
        submission_id=submission_id,
    )
    return JSONResponse(
        status_code=202,
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "status": "accepted",
            "submission_id": submission_id,
            "request_id": request_id,
        },
    )


def get_settings() -> Settings:
    return load_settings()


def _generate_in_background(
    *,
    record: RawRecord,
    settings: Settings,
    renderer: TemplateRenderer,
    field_spec: FieldSpec,
    audit_sink: AuditSink | None,
    lock: GenerationLock,
    request_id: str,
) -> None:
    try:
        report = run_cycle(
            StaticRecordSource([record], name=WEBHOOK_SOURCE_NAME),
            renderer,
            ArtifactWriter(settings.output_dir, extension=renderer.extension),
            CycleOptions(window_days=0),
            field_spec=field_spec,
            audit_sink=audit_sink,
        )
    except Exception as exc:  # noqa: BLE001
        log_event(
            logger,
            logging.ERROR,
            "webhook_generation_failed",
            request_id=request_id,
            record_id=record.record_id,
            error=f"{type(exc).__name__}: {exc}",
        )
        return
    finally:
        lock.release()

    log_event(
        logger,
        logging.INFO,
        "webhook_generation_complete",
        request_id=request_id,
        record_id=record.record_id,
        generated=report.generated,
        skipped=report.skipped,
        failed=report.failed,
    )


def _load_record(
    settings: Settings,
    submission_id: str | None,
    body: Mapping[str, Any],
    request_id: str,
) -> RawRecord:
    """Prefer the API's copy of the submission; fall back to the pushed body."""

    if submission_id and settings.jotform_api_key and settings.jotform_form_id:
        try:
            return build_jotform_source(settings).fetch_submission(submission_id)
        except SourceFetchError as exc:
            log_event(
                logger,
                logging.WARNING,
                "webhook_submission_fetch_failed",
                request_id=request_id,
                submission_id=submission_id,
                error=str(exc),
            )
    return flatten_submission(body)


async def _read_payload(request: Request) -> dict[str, Any] | None:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            raw = await request.json()
        except ValueError:
            return None
        return raw if isinstance(raw, dict) else None

    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _secret_matches(expected: str | None, provided: str | None) -> bool:
    if not expected:
        return True
    if provided is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
    extra_headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    headers = {REQUEST_ID_HEADER: request_id}
    if extra_headers is not None:
        headers.update(extra_headers)

    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )
