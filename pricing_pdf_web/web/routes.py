from __future__ import annotations

import io
from typing import Any, Mapping, Optional

from flask import Blueprint, current_app, jsonify, request, send_file

from pricing_pdf_web.domain.errors import InvalidSubmissionError, ReportNotReadyError, RunNotFoundError
from pricing_pdf_web.repositories.analytics_repository import MAX_LIST_LIMIT
from pricing_pdf_web.services.domain_parsing import sanitize_user_id
from pricing_pdf_web.utils.clock import to_iso, utc_now

SERVICE_NAME = "pricing-page-pdf"
DEFAULT_LIST_LIMIT = 50


def _safe_int(raw: Optional[str]) -> Optional[int]:
    raw = (raw or "").strip()
    try:
        return int(raw)
    except ValueError:
        return None


def _clamp_limit(raw: Optional[str]) -> int:
    value = _safe_int(raw)
    if value is None:
        return DEFAULT_LIST_LIMIT
    return min(max(value, 1), MAX_LIST_LIMIT)


def _submission() -> Mapping[str, Any]:
    # JSON body first, plain form posts still work
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form


def _error(message: str, status: int, **extra: Any):
    payload = {"error": message}
    payload.update(extra)
    return jsonify(payload), status


def create_blueprint(run_service, analytics_log) -> Blueprint:
    bp = Blueprint("api", __name__, url_prefix="/api")

    def analytics_user_id():
        """(user_id, error_response); user_id is None when the filter is absent."""
        raw = request.args.get("user_id")
        if not raw:
            return None, None
        user_id = sanitize_user_id(raw)
        if user_id is None:
            return None, _error("Invalid user_id", 400)
        return user_id, None

    @bp.get("/health")
    def health():
        return jsonify({"ok": True, "service": SERVICE_NAME, "timestamp": to_iso(utc_now())})

    @bp.post("/runs")
    def create_run():
        form = _submission()
        try:
            run = run_service.submit(form.get("user_id"), form.get("domains"), form.get("time_zone"))
        except InvalidSubmissionError as e:
            current_app.logger.info("Rejected run submission: %s", e)
            if e.invalid_tokens is None:
                return _error(str(e), 400)
            return _error(str(e), 400, invalid_tokens=e.invalid_tokens)

        current_app.logger.info("Run %s accepted domains=%d", run.id, run.domains_count)
        return jsonify({
            "run_id": run.id,
            "status": run.status.value,
            "status_url": f"/api/runs/{run.id}/status",
            "download_url": f"/api/runs/{run.id}/download",
            "domains_count": run.domains_count,
            "invalid_tokens": list(run.invalid_tokens),
        }), 202

    @bp.get("/runs/<run_id>/status")
    def run_status(run_id: str):
        try:
            return jsonify(run_service.status(run_id))
        except RunNotFoundError:
            return _error("Run not found or expired", 404)

    @bp.get("/runs/<run_id>/download")
    def download(run_id: str):
        try:
            pdf, filename = run_service.download(run_id)
        except RunNotFoundError:
            return _error("Run not found or expired", 404)
        except ReportNotReadyError:
            return _error("PDF is not ready yet", 409)

        current_app.logger.info("Run %s downloaded as %s", run_id, filename)
        return send_file(
            io.BytesIO(pdf),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=filename,
        )

    @bp.get("/analytics/summary")
    def analytics_summary():
        user_id, err = analytics_user_id()
        if err is not None:
            return err
        return jsonify(analytics_log.get_summary(user_id=user_id))

    @bp.get("/analytics/runs")
    def analytics_runs():
        user_id, err = analytics_user_id()
        if err is not None:
            return err
        limit = _clamp_limit(request.args.get("limit"))
        return jsonify({"runs": analytics_log.list_runs(user_id=user_id, limit=limit)})

    return bp
