"""Main Quart application for the Maintenance Assistant."""
import hmac
from typing import Optional

from pydantic import ValidationError
from quart import Quart, jsonify, request
import structlog

from maintenance_assistant import config
from maintenance_assistant.errors import QueryError
from maintenance_assistant.logging_config import configure_logging
from maintenance_assistant.schemas import DocumentEvent
from maintenance_assistant.services import Services, build_services

configure_logging()

logger = structlog.get_logger()

app = Quart(__name__)

# Populated once in before_serving (or directly by tests)
app.services = None


def _error(status: str, message: str, status_code: int):
    return jsonify({"error": {"status": status, "message": message}}), status_code


def _authenticated_principal(services: Services) -> Optional[str]:
    """Map an ``Authorization: Bearer <token>`` header to a principal."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None

    supplied = token.strip().encode()
    for known_token, principal in services.tokens.items():
        if hmac.compare_digest(known_token.encode(), supplied):
            return principal
    return None


@app.before_serving
async def startup():
    """Build process-wide services once, before accepting requests."""
    if app.services is None:
        app.services = build_services()
    if app.services.watcher is not None:
        await app.services.watcher.start()
    logger.info("app_started")


@app.after_serving
async def shutdown():
    if app.services is not None:
        await app.services.close()
        app.services = None


@app.route("/api/query", methods=["POST"])
async def query():
    """Answer a question grounded in the ingested manuals.

    Expects JSON body:
    {
        "question": "user question text",
        "history": [{"role": "user", "content": "..."}, ...]  // last 6 turns
    }

    Returns JSON:
    {
        "response": "assistant response text"
    }
    """
    services = app.services
    if services is None:
        return _error("unavailable", "Service is starting up.", 503)

    principal = _authenticated_principal(services)
    payload = await request.get_json(silent=True)

    try:
        result = await services.orchestrator.answer(principal, payload)
    except QueryError as e:
        # Only the kind and a generic message leave the server
        return _error(e.code, e.message, e.status_code)

    return jsonify(result.model_dump())


@app.route("/api/documents/events", methods=["POST"])
async def document_event():
    """Storage trigger: a document was finalized in a bucket.

    Expects JSON body:
    {
        "bucket": "manuals",
        "name": "uploads/engine-manual.pdf",
        "content_type": "application/pdf"
    }

    Ingestion runs in the background; failures only appear in the logs.
    """
    services = app.services
    if services is None:
        return _error("unavailable", "Service is starting up.", 503)

    if config.INGEST_WEBHOOK_TOKEN:
        supplied = request.headers.get("X-Ingest-Token", "").encode()
        if not hmac.compare_digest(supplied, config.INGEST_WEBHOOK_TOKEN.encode()):
            return _error("unauthenticated", "Invalid ingest token.", 401)

    payload = await request.get_json(silent=True)
    try:
        event = DocumentEvent.model_validate(payload or {})
    except ValidationError:
        return _error("invalid-argument", "Malformed storage event.", 400)

    app.add_background_task(services.pipeline.handle_event, event)
    logger.info("document_event_accepted", bucket=event.bucket, name=event.name)

    return jsonify({"status": "accepted"}), 202


@app.route("/health/ready")
async def health_ready():
    """Readiness probe - check if app can serve requests.

    Checks:
    - Services are initialized
    - Chunk store is readable
    - Gemini API is reachable and the chat model is available
    """
    checks = {
        "status": "healthy",
        "services": False,
        "store": False,
        "gemini": False,
    }

    services = app.services
    if services is None:
        checks["status"] = "unhealthy"
        checks["error"] = "Services not initialized"
        return jsonify(checks), 503

    checks["services"] = True

    try:
        checks["chunk_count"] = services.store.count()
        checks["store"] = True

        models = await services.client.list_models()
        checks["gemini"] = True

        if services.client.chat_model not in models:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing chat model: {services.client.chat_model}"

    except Exception as e:
        logger.error("health_check_failed", error=str(e), error_type=type(e).__name__)
        checks["status"] = "unhealthy"
        checks["error"] = type(e).__name__

    status_code = 200 if checks["status"] == "healthy" else 503
    return jsonify(checks), status_code


@app.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return _error("not-found", "Not found", 404)


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return _error("internal", "An error occurred while processing your request.", 500)


if __name__ == "__main__":
    # For development - use hypercorn in production
    app.run(host="0.0.0.0", port=5000, debug=True)
