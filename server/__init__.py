"""Flask application exposing the image job tools via HTTP."""
from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from jobs.errors import JobError, JobStateError, ValidationError
from jobs.service import JobService
from observability.logger import bind_trace_id, clear_trace_id, get_logger
from observability.metrics import get_registry
from services.gemini_client import GeminiImageClient

from .tools import call_tool, list_tools

LOGGER = get_logger("imagegen.api")

SERVICE_EXTENSION = "job_service"


def build_default_service() -> JobService:
    client = GeminiImageClient()
    return JobService.create(client.generate)


def get_service(app: Flask) -> JobService:
    return app.extensions[SERVICE_EXTENSION]


def _error_response(payload: Dict[str, Any], status_code: int):
    payload["trace_id"] = getattr(g, "trace_id", None)
    return jsonify({"error": payload}), status_code


def create_app(service: Optional[JobService] = None) -> Flask:
    app = Flask(__name__)
    if hasattr(app, "json"):
        app.json.ensure_ascii = False
        app.json.sort_keys = False
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    app.extensions[SERVICE_EXTENSION] = service or build_default_service()

    @app.before_request
    def _bind_request_trace() -> None:
        trace_id = request.headers.get("X-Trace-Id") or uuid.uuid4().hex
        g.trace_id = trace_id
        bind_trace_id(trace_id)

    @app.after_request
    def _append_trace(response):  # type: ignore[override]
        trace_id = getattr(g, "trace_id", None)
        if trace_id:
            response.headers.setdefault("X-Trace-Id", trace_id)
        return response

    @app.teardown_request
    def _teardown_trace(_exc):  # type: ignore[override]
        clear_trace_id()

    @app.errorhandler(JobError)
    def _handle_job_error(exc: JobError):  # type: ignore[override]
        LOGGER.warning("tool_error", extra={"code": exc.code, "error": exc.message})
        return _error_response(exc.to_dict(), exc.status_code)

    @app.errorhandler(JobStateError)
    def _handle_state_error(exc: JobStateError):  # type: ignore[override]
        LOGGER.critical("job_state_violation", exc_info=exc)
        return _error_response({"code": "internal_error", "message": str(exc)}, 500)

    @app.errorhandler(Exception)
    def _handle_generic_error(exc: Exception):  # type: ignore[override]
        code = getattr(exc, "code", None)
        if isinstance(code, int) and 400 <= code < 500:
            return _error_response({"code": "http_error", "message": str(exc)}, code)
        LOGGER.exception("Unhandled error")
        return _error_response({"code": "internal_error", "message": "Internal server error"}, 500)

    @app.get("/api/tools")
    def tools_index():
        return jsonify({"tools": list_tools()})

    @app.post("/api/tools/<name>")
    def tools_call(name: str):
        arguments = _read_arguments()
        LOGGER.info("tool_call", extra={"tool": name})
        result = call_tool(get_service(app), name, arguments)
        return jsonify(result)

    @app.get("/api/health")
    def health():
        job_service = get_service(app)
        return jsonify(
            {
                "ok": True,
                "jobs": len(job_service.job_store),
                "batches": len(job_service.batch_store),
                "in_flight": job_service.runner.in_flight(),
                "metrics": get_registry().snapshot(),
            }
        )

    return app


def _read_arguments() -> Any:
    if not request.get_data():
        return {}
    try:
        return request.get_json(force=True)
    except Exception as exc:  # noqa: BLE001
        raise ValidationError("Invalid JSON body") from exc
