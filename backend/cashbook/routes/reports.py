# backend/cashbook/routes/reports.py
"""
Transactions report API routes.
"""
from flask import Blueprint, Response, current_app, g, jsonify, request

from cashbook.decorators import require_actor
from cashbook.services import report_service
from cashbook.time_utils import parse_iso_date


reports_bp = Blueprint("transactions_reports", __name__, url_prefix="/api/transactions-reports")


@reports_bp.get("")
@require_actor
def list_reports():
    reports = report_service.list_reports(g.account_id)
    return jsonify({"reports": [report.to_dict() for report in reports]}), 200


@reports_bp.post("")
@require_actor
def create_report():
    """
    Request a report for the acting user's account.

    Request body:
    {
        "cutoff_date": "YYYY-MM-DD" (optional, default six months ago)
    }

    Returns:
        201: Report created (status may already be completed or failed)
        400: Invalid cutoff date
        409: A report for this cutoff date already exists
    """
    data = request.get_json(silent=True) or {}
    try:
        cutoff_date = parse_iso_date(data.get("cutoff_date")) or report_service.retention_cutoff_date()
    except (TypeError, ValueError):
        return jsonify({"error": "Invalid cutoff date"}), 400

    try:
        report = report_service.request_report(account_id=g.account_id, cutoff_date=cutoff_date)
    except Exception:
        current_app.logger.exception("Failed to create transactions report")
        return jsonify({"error": "Failed to create transactions report"}), 500

    if report is None:
        return jsonify({"error": f"A report for cutoff date {cutoff_date.isoformat()} already exists"}), 409
    return jsonify(report_service.report_summary(report)), 201


@reports_bp.get("/<int:report_id>")
@require_actor
def show_report(report_id: int):
    try:
        report = report_service.get_account_report(g.account_id, report_id)
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(report_service.report_summary(report)), 200


@reports_bp.get("/<int:report_id>/download")
@require_actor
def download_report(report_id: int):
    try:
        report = report_service.get_account_report(g.account_id, report_id)
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 404

    artifact = report.artifact
    if artifact is None:
        return jsonify({"error": "Report file is not available"}), 404

    return Response(
        artifact.data,
        mimetype=artifact.content_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@reports_bp.delete("/<int:report_id>")
@require_actor
def delete_report(report_id: int):
    try:
        report = report_service.get_account_report(g.account_id, report_id)
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 404

    try:
        report_service.delete_report(report)
    except report_service.ReportStateError as exc:
        return jsonify({"error": str(exc)}), 409
    return jsonify({"id": report_id, "deleted": True}), 200
