"""
Renewals Blueprint.

Thin boundary over the renewal workflow, its log and the quote service.
All business logic lives in the services; each request is one transaction.

Endpoints:
  Batch transitions:  POST /renewals/<action>
                      action: first-call, grace-period, to-pay, invoiced, paid,
                              done, receipt, closed, abandoned, lapsed
                      body:   { "task_ids": [int], "user": str, "job_id"?: int }
  Transition log:     GET  /renewals/logs
                      query:  matter, client, job, user, from_date, until_date,
                              limit, offset
  Quote:              GET  /renewals/<task_id>/quote?notify_type=first|last
  Batch quote:        POST /renewals/quotes
                      body:   { "task_ids": [int], "notify_type"?: "first"|"last" }
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from app.blueprints import paginate_query
from app.config import RenewalSettings
from app.core.context import ActingContext
from app.models.task import RenewalsLog, Task
from app.services.renewal_log_service import ALLOWED_FILTERS, filter_logs
from app.services.renewal_quote_service import quote_renewal, quote_renewals
from app.services.renewal_workflow import RenewalWorkflow
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

renewal_bp = Blueprint("renewals", __name__, url_prefix="/api/v1/renewals")


@renewal_bp.route("/quotes", methods=["POST"])
def batch_quotes():
    """Quote a batch of renewal tasks; tasks lacking fee data are skipped.

    Returns: { "quotes": [...], "skipped": [{"task_id", "reason"}] }
    """
    data = request.get_json(silent=True) or {}
    task_ids = data.get("task_ids")
    if not isinstance(task_ids, list) or not all(isinstance(t, int) for t in task_ids):
        return api_error(E.VALIDATION_INVALID, "task_ids must be a list of integers")

    tasks = Task.query.filter(Task.id.in_(task_ids)).order_by(Task.id).all() if task_ids else []
    found = {task.id for task in tasks}
    result = quote_renewals(
        [task for task in tasks if task.is_renewal],
        RenewalSettings.from_config(current_app.config),
        notify_type=data.get("notify_type", "first"),
    )
    result["skipped"].extend(
        {"task_id": task.id, "reason": "not a renewal task"} for task in tasks if not task.is_renewal
    )
    result["skipped"].extend(
        {"task_id": task_id, "reason": "not found"} for task_id in dict.fromkeys(task_ids) if task_id not in found
    )
    return jsonify(result), 200


@renewal_bp.route("/<string:action>", methods=["POST"])
def transition(action: str):
    """Apply a workflow action to a batch of renewal tasks.

    Returns: { "action", "requested", "updated", "skipped": [...], "job_id" }
    """
    if action not in RenewalWorkflow.ACTIONS:
        return api_error(E.VALIDATION_INVALID, f"Unknown renewal action: {action}",
                         details={"allowed": sorted(RenewalWorkflow.ACTIONS)})

    data = request.get_json(silent=True) or {}
    task_ids = data.get("task_ids")
    user = data.get("user")
    if task_ids is None or not user:
        return api_error(E.VALIDATION_REQUIRED, "task_ids and user are required")
    if not isinstance(task_ids, list) or not all(isinstance(t, int) for t in task_ids):
        return api_error(E.VALIDATION_INVALID, "task_ids must be a list of integers")

    ctx = ActingContext(user=str(user), job_id=data.get("job_id"))
    report = RenewalWorkflow().apply_action(action, task_ids, ctx)

    err = db_commit_or_error()
    if err:
        return err
    return jsonify(report.to_dict()), 200


@renewal_bp.route("/logs", methods=["GET"])
def list_logs():
    """List renewal transition logs, newest first.

    Returns: { "items": [...], "total": int }
    """
    filters = {key: request.args.get(key) for key in ALLOWED_FILTERS}
    query = filter_logs(RenewalsLog.query, filters).order_by(RenewalsLog.id.desc())
    items, total = paginate_query(query)
    return jsonify({"items": [log.to_dict() for log in items], "total": total}), 200


@renewal_bp.route("/<int:task_id>/quote", methods=["GET"])
def get_quote(task_id: int):
    """Priced quote of one renewal task."""
    task, err = get_or_404(Task, task_id)
    if err:
        return err
    if not task.is_renewal:
        return api_error(E.VALIDATION_INVALID, f"Task {task_id} is not a renewal")

    notify_type = request.args.get("notify_type", "first")
    settings = RenewalSettings.from_config(current_app.config)
    return jsonify(quote_renewal(task, settings, notify_type=notify_type)), 200
