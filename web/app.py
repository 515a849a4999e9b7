"""
Flask query API for OpsWatch.

Alert endpoints (prefix /api/alerts):
  GET  /active               - Active alerts with severity counts
  GET  /history?limit=N      - Lifecycle history, newest first
  GET  /statistics           - 24h rollup
  GET  /summary              - Dashboard summary
  POST /acknowledge/<id>     - Acknowledge an active alert
  POST /resolve/<type>       - Manually resolve the active alert of a type
  GET  /config, PUT /config  - Read or update thresholds
  POST /test/<type>          - Inject a synthetic alert
  POST /check                - Run a cycle now and return its result
  GET  /rules                - Rule metadata with a dry-run preview
  POST /scan-range           - Dry-run the rules over logs between {start, end}
  GET  /stream               - Server-sent events from the broadcast channel

Started via: python main.py run --web [--port 5000] [--host 0.0.0.0]
"""
import json
import queue
import logging
from concurrent.futures import TimeoutError as FutureTimeout

from flask import Flask, Response, jsonify, request, stream_with_context

from alerts.rules import TEST_ALERTS
from config.thresholds import InvalidThresholdError
from models.alerts import utcnow
from monitor.monitor import ActiveAlertConflict
from monitor.providers import parse_timestamp

logger = logging.getLogger("opswatch.web.app")

CHECK_TIMEOUT = 60
STREAM_KEEPALIVE = 15


def create_app(config: dict, engines: dict) -> Flask:
    """
    Factory function. Receives initialized components from main.py / wsgi.py.

    Args:
        config: Application config dict
        engines: dict with monitor, scheduler, thresholds, store and,
                 optionally, broadcast
    """
    app = Flask(__name__)

    monitor = engines["monitor"]
    store = engines["store"]
    thresholds = engines["thresholds"]
    history_cap = config.get("alerts", {}).get("history_size", 1000)

    def error(message, status, **extra):
        body = {"success": False, "error": message}
        body.update(extra)
        return jsonify(body), status

    # ─── Alerts ──────────────────────────────────────────

    @app.route("/api/alerts/active")
    def api_active():
        alerts = store.get_active()
        return jsonify({
            "success": True,
            "alerts": [a.to_dict() for a in alerts],
            "total": len(alerts),
            "critical": sum(1 for a in alerts if a.severity.value == "critical"),
            "warning": sum(1 for a in alerts if a.severity.value == "warning"),
        })

    @app.route("/api/alerts/history")
    def api_history():
        try:
            limit = int(request.args.get("limit", 100))
        except ValueError:
            return error("limit must be an integer", 400)
        limit = max(1, min(limit, history_cap))
        entries = store.get_history(limit=limit)
        return jsonify({
            "success": True,
            "history": [e.to_dict() for e in entries],
            "count": len(entries),
        })

    @app.route("/api/alerts/statistics")
    def api_statistics():
        return jsonify({"success": True, "statistics": monitor.get_statistics()})

    @app.route("/api/alerts/summary")
    def api_summary():
        return jsonify({"success": True, "summary": monitor.get_summary()})

    @app.route("/api/alerts/acknowledge/<alert_id>", methods=["POST"])
    def api_acknowledge(alert_id):
        transition = monitor.acknowledge(alert_id)
        if transition is None:
            return error(f"Alert not found: {alert_id}", 404)
        return jsonify({"success": True, "alert": transition.alert.to_dict()})

    @app.route("/api/alerts/resolve/<alert_type>", methods=["POST"])
    def api_resolve(alert_type):
        transition = monitor.resolve(alert_type)
        if transition is None:
            return error(f"No active alert of type: {alert_type}", 404)
        return jsonify({"success": True, "alert": transition.alert.to_dict()})

    # ─── Thresholds ──────────────────────────────────────

    @app.route("/api/alerts/config", methods=["GET"])
    def api_get_config():
        return jsonify({"success": True, "config": thresholds.snapshot()})

    @app.route("/api/alerts/config", methods=["PUT"])
    def api_update_config():
        changes = request.get_json(silent=True)
        if not isinstance(changes, dict):
            return error("Request body must be a JSON object", 400)
        try:
            current = thresholds.update(changes)
        except InvalidThresholdError as e:
            return error(str(e), 400, invalid_keys=e.invalid_keys, valid_keys=thresholds.valid_keys)
        return jsonify({"success": True, "config": current})

    # ─── Manual operations ───────────────────────────────

    @app.route("/api/alerts/test/<alert_type>", methods=["POST"])
    def api_test_alert(alert_type):
        try:
            created = monitor.create_test_alert(alert_type)
        except ActiveAlertConflict as e:
            return error(str(e), 409, active_alert=e.alert.to_dict())
        if created is None:
            valid = sorted(TEST_ALERTS)
            return error(f"Invalid alert type. Valid types: {', '.join(valid)}", 400, valid_types=valid)
        transition, _ = created
        return jsonify({"success": True, "alert": transition.alert.to_dict()})

    @app.route("/api/alerts/check", methods=["POST"])
    def api_check():
        scheduler = engines.get("scheduler")
        try:
            if scheduler is not None:
                result = scheduler.trigger_now().result(timeout=CHECK_TIMEOUT)
            else:
                result = monitor.run_cycle()
        except FutureTimeout:
            return error(f"Cycle did not finish within {CHECK_TIMEOUT}s", 504)
        except Exception as e:
            logger.error(f"Manual check failed: {e}")
            return error(str(e), 503)
        return jsonify({"success": result.ok, "result": result.to_dict()})

    @app.route("/api/alerts/rules")
    def api_rules():
        preview, failures = monitor.preview_rules()
        return jsonify({"success": True, "rules": preview, "provider_failures": failures})

    @app.route("/api/alerts/scan-range", methods=["POST"])
    def api_scan_range():
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or not body.get("start") or not body.get("end"):
            return error("start and end are required", 400)
        try:
            start, end = parse_timestamp(body["start"]), parse_timestamp(body["end"])
        except (ValueError, TypeError, OverflowError):
            return error("start and end must be ISO-8601 timestamps", 400)
        try:
            result = monitor.scan_range(start, end)
        except LookupError as e:
            return error(str(e), 404)
        except FileNotFoundError as e:
            return error(str(e), 503)
        except ValueError as e:
            return error(str(e), 400)
        return jsonify({"success": True, **result})

    # ─── Real-time stream ────────────────────────────────

    @app.route("/api/alerts/stream")
    def api_stream():
        broadcast = engines.get("broadcast")
        if broadcast is None:
            return error("Real-time stream not enabled", 404)
        subscription = broadcast.subscribe()

        def generate():
            try:
                yield f"event: connected\ndata: {json.dumps({'timestamp': utcnow().isoformat()})}\n\n"
                while True:
                    try:
                        message = subscription.get(timeout=STREAM_KEEPALIVE)
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    yield f"event: {message['event']}\ndata: {json.dumps(message['data'], default=str)}\n\n"
            finally:
                broadcast.unsubscribe(subscription)

        return Response(stream_with_context(generate()), mimetype="text/event-stream",
                        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})

    # ─── Health ──────────────────────────────────────────

    @app.route("/api/health")
    def api_health():
        scheduler = engines.get("scheduler")
        last = monitor.last_result
        return jsonify({
            "success": True,
            "status": "ok",
            "scheduler_running": bool(scheduler and scheduler.running),
            "active_alerts": len(store),
            "last_cycle": last.to_dict() if last else None,
            "timestamp": utcnow().isoformat(),
        })

    return app
