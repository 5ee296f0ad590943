import os
import platform
from flask import Blueprint, jsonify, Response

from precedent_finder import config as pipeline_config
from precedent_finder.api import config, state
from precedent_finder.cache import get_shared_cache

monitoring_bp = Blueprint('monitoring', __name__)


@monitoring_bp.route("/metrics", methods=["GET"])
def metrics():
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


@monitoring_bp.route("/api/version", methods=["GET"])
def version():
    return jsonify({
        "version": config.APP_VERSION,
        "env": config.APP_ENV,
        "commit": os.getenv("GIT_COMMIT"),
        "python": platform.python_version(),
    })


@monitoring_bp.route("/api/health", methods=["GET"])
def health():
    """Liveness plus a view of which optional collaborators are switched on."""
    return jsonify({
        "status": "ok",
        "engine_loaded": state.engine is not None,
        "hybrid_retrieval": pipeline_config.HYBRID_RETRIEVAL,
        "semantic_index_configured": bool(pipeline_config.SEMANTIC_INDEX_DIR)
        and os.path.exists(os.path.join(pipeline_config.SEMANTIC_INDEX_DIR, 'embeddings.npy')),
        "shared_cache": get_shared_cache().storage_uri.split("://", 1)[0],
    }), 200
