"""Flask application for the precedent finder.

Wires the search and monitoring blueprints, request-scoped ids, one JSON
access-log line per request and the HTTP-level Prometheus instruments.
Pipeline-level instruments live in ``precedent_finder.metrics``.
"""
import time
import uuid
import json
import logging
from datetime import datetime, timezone
from flask import Flask, request, g, jsonify
from flask_cors import CORS
from flasgger import Swagger
from prometheus_client import Counter, Histogram
from werkzeug.exceptions import RequestEntityTooLarge
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration

from precedent_finder.api import config, state
from precedent_finder.api.routes import search_bp, monitoring_bp
from precedent_finder.api.extensions import limiter
from precedent_finder.errors import ConfigurationError, PipelineError

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger("api")

try:
    state.REQUEST_COUNT = Counter('precedent_finder_requests_total', 'HTTP requests served',
                                  ['method', 'endpoint', 'status'])
    state.REQUEST_LATENCY = Histogram('precedent_finder_request_latency_seconds', 'HTTP latency in seconds',
                                      ['endpoint'])
    state.SEARCH_STATUS_TOTAL = Counter('precedent_finder_search_status_total', 'Search responses by status',
                                        ['status'])
except ValueError:
    # already registered when the module is re-imported
    pass

if config.SENTRY_DSN:
    try:
        sentry_sdk.init(
            dsn=config.SENTRY_DSN,
            integrations=[FlaskIntegration()],
            traces_sample_rate=config.SENTRY_TRACES_SAMPLE_RATE,
            profiles_sample_rate=config.SENTRY_PROFILES_SAMPLE_RATE,
            environment=config.APP_ENV,
            release=config.APP_VERSION,
        )
        logger.info("Sentry initialized")
    except Exception as _e:
        logger.error(f"Sentry init failed: {_e}")

app = Flask(__name__)
CORS(app, expose_headers=["X-Request-ID"])
Swagger(app, template={"info": {"title": "Precedent Finder API", "version": config.APP_VERSION}})
app.config['MAX_CONTENT_LENGTH'] = config.MAX_CONTENT_LENGTH

limiter.init_app(app)

app.register_blueprint(search_bp)
app.register_blueprint(monitoring_bp)


def _access_record(response, duration: float) -> dict:
    return {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "lvl": "info",
        "request_id": getattr(g, 'request_id', None),
        "method": request.method,
        "path": request.path,
        "endpoint": getattr(g, 'endpoint_for_metrics', request.path),
        "status": response.status_code,
        "duration_ms": int(duration * 1000),
        "remote_addr": request.headers.get('X-Forwarded-For', request.remote_addr),
    }


@app.before_request
def _before_request():
    g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    g.started_at = time.time()
    g.endpoint_for_metrics = request.endpoint or request.path


@app.after_request
def _after_request(response):
    duration = time.time() - getattr(g, 'started_at', time.time())
    logger.info(json.dumps(_access_record(response, duration), ensure_ascii=False))
    ep = getattr(g, 'endpoint_for_metrics', request.path)
    if state.REQUEST_COUNT:
        state.REQUEST_COUNT.labels(request.method, ep, response.status_code).inc()
    if state.REQUEST_LATENCY:
        state.REQUEST_LATENCY.labels(ep).observe(duration)
    if getattr(g, 'request_id', None):
        response.headers["X-Request-ID"] = g.request_id
    return response


@app.errorhandler(RequestEntityTooLarge)
def _too_large(_err):
    return jsonify({"error": "payload_too_large", "limit_bytes": config.MAX_CONTENT_LENGTH}), 413


@app.errorhandler(429)
def _rate_limited(err):
    return jsonify({"error": "rate_limited", "detail": str(getattr(err, 'description', err))}), 429


@app.errorhandler(PipelineError)
def _pipeline_error(err):
    # Blocking and no-match are response values; anything reaching here is a setup fault.
    logger.error(json.dumps({"lvl": "error", "request_id": getattr(g, 'request_id', None),
                             "error": type(err).__name__, "detail": str(err)}))
    status = 503 if isinstance(err, ConfigurationError) else 500
    return jsonify({"error": "pipeline_unavailable", "detail": str(err)}), status


if __name__ == "__main__":
    app.run(debug=True, port=5002, host="0.0.0.0")
