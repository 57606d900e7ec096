"""
Scheduler blueprint — inspect, trigger and toggle background jobs.

Endpoints:
    GET   /api/v1/scheduler/jobs
    GET   /api/v1/scheduler/jobs/<job_name>
    POST  /api/v1/scheduler/jobs/<job_name>/trigger
    PATCH /api/v1/scheduler/jobs/<job_name>/toggle
"""

from flask import Blueprint, jsonify, request

from packerp.auth import require_role
from packerp.services.scheduler_service import SchedulerService

scheduler_bp = Blueprint("scheduler", __name__, url_prefix="/api/v1/scheduler")


@scheduler_bp.route("/jobs", methods=["GET"])
def list_scheduled_jobs():
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@scheduler_bp.route("/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    job = SchedulerService.get_job_status(job_name)
    if not job:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404
    return jsonify(job)


@scheduler_bp.route("/jobs/<job_name>/trigger", methods=["POST"])
@require_role("admin")
def trigger_job(job_name):
    """Manually trigger a job. Runs even when the job is disabled."""
    result = SchedulerService.run_job(job_name, force=True)
    if result.get("status") == "error" and "Unknown job" in result.get("error", ""):
        return jsonify(result), 404
    return jsonify(result)


@scheduler_bp.route("/jobs/<job_name>/toggle", methods=["PATCH"])
@require_role("admin")
def toggle_job_status(job_name):
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return jsonify({"error": "'enabled' field is required (true/false)"}), 400

    result = SchedulerService.toggle_job(job_name, bool(enabled))
    if not result:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404
    return jsonify(result)
