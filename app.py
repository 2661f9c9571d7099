# app.py
import logging
import os
from datetime import datetime, timezone

from flask import Flask, jsonify, request

from notifications.runtime import get_runtime
from notifications.scheduler import CycleLockUnavailable, SchedulerShutDown
from notifications.service import send_welcome_email

LOGGER = logging.getLogger(__name__)

app = Flask(__name__)


@app.get("/")
def index():
    return "Skill Up Academy API is running"


@app.get("/api/health")
def health():
    return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})


@app.post("/api/email/welcome")
def welcome_email():
    payload = request.get_json(silent=True) or {}
    user_email = payload.get("userEmail")
    user_name = payload.get("userName")
    user_id = payload.get("userId")
    if not user_email or not user_name or not user_id:
        return jsonify({"success": False, "error": "Missing required fields: userEmail, userName, userId"}), 400

    runtime = get_runtime()
    try:
        result = send_welcome_email(
            runtime.dispatcher, runtime.renderer, runtime.log, user_id, user_email, user_name
        )
    except Exception:
        LOGGER.exception("Error in welcome email endpoint")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    if result.success:
        return jsonify({"success": True, "message": "Welcome email sent successfully"})
    return jsonify({"success": False, "error": "Failed to send welcome email", "details": result.error_detail}), 500


@app.post("/api/email/check-inactivity")
def check_inactivity():
    """Run one inactivity cycle now, through the same guard as the beat tick."""
    try:
        report = get_runtime().scheduler.trigger(source="manual")
    except SchedulerShutDown:
        return jsonify({"success": False, "error": "Scheduler is shutting down"}), 503
    except CycleLockUnavailable:
        LOGGER.exception("Inactivity check refused: cycle lock unavailable")
        return jsonify({"success": False, "error": "Scheduler lock unavailable"}), 503
    if report is None:
        return jsonify({"success": False, "error": "An inactivity check is already running"}), 409
    return jsonify({"success": True, "message": "Inactivity check completed", "report": report.as_dict()})


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    get_runtime()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=os.getenv("FLASK_ENV") != "production")
