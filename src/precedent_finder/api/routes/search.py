import logging
from flask import Blueprint, request, jsonify
from flasgger import swag_from
from werkzeug.exceptions import BadRequest
from pydantic import ValidationError

from precedent_finder.api import config, state, dependencies, models
from precedent_finder.api.extensions import limiter
from precedent_finder.pipeline.query_coach import evaluate_query

logger = logging.getLogger(__name__)

search_bp = Blueprint('search', __name__)


def _parse(model):
    raw = request.get_json(silent=True)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise BadRequest("Body must be a JSON object")
    return model(**raw)


@search_bp.route("/api/search", methods=["POST"])
@limiter.limit(config.SEARCH_RATE_LIMIT)
@swag_from({
    'tags': ['search'],
    'consumes': ['application/json'],
    'parameters': [{
        'name': 'body', 'in': 'body', 'required': True,
        'schema': {'type': 'object', 'required': ['query'], 'properties': {
            'query': {'type': 'string', 'description': 'Free-text fact scenario'},
            'max_results': {'type': 'integer', 'minimum': 1, 'maximum': 20},
            'debug': {'type': 'boolean', 'description': 'Attach the pipeline trace'},
            'candidates': {'type': 'array', 'items': {'type': 'object'},
                           'description': 'Pre-fetched raw candidates; skips retrieval'},
            'reasoner_plan': {'type': 'object'},
            'client_blocked_kind': {'type': 'string',
                                    'enum': ['local_cooldown', 'cloudflare_challenge', 'rate_limit']},
        }}
    }],
    'responses': {200: {'description': 'Tiered precedent results'}, 400: {'description': 'Validation failed'}}
})
def search_precedents():
    auth = dependencies.require_api_key()
    if auth:
        return auth
    try:
        parsed = _parse(models.SearchRequest)
    except ValidationError as ve:
        return jsonify({"error": "validation_failed", "details": ve.errors(include_url=False)}), 400

    response = dependencies.get_engine().search(
        parsed.query.strip(),
        max_results=parsed.max_results,
        debug=parsed.debug,
        candidates=parsed.candidates,
        reasoner_plan=parsed.reasoner_plan,
        client_blocked_kind=parsed.client_blocked_kind,
    )
    if state.SEARCH_STATUS_TOTAL:
        state.SEARCH_STATUS_TOTAL.labels(response.status).inc()
    return jsonify(response.model_dump(mode="json", exclude_none=True))


@search_bp.route("/api/query-coach", methods=["POST"])
@swag_from({
    'tags': ['search'],
    'consumes': ['application/json'],
    'parameters': [{
        'name': 'body', 'in': 'body', 'required': True,
        'schema': {'type': 'object', 'required': ['query'], 'properties': {'query': {'type': 'string'}}}
    }],
    'responses': {200: {'description': 'Query readiness checklist and rewrite'}}
})
def query_coach():
    auth = dependencies.require_api_key()
    if auth:
        return auth
    try:
        parsed = _parse(models.QueryCoachRequest)
    except ValidationError as ve:
        return jsonify({"error": "validation_failed", "details": ve.errors(include_url=False)}), 400
    return jsonify(evaluate_query(parsed.query).model_dump(mode="json"))
