"""
Datasette plugin exposing the vendor catalog as JSON routes.

- Evaluate a vendor submission with the model runner
- Submit: evaluate, then admit approved products to the catalog
- Catalog service: list, create, search and inspect products
- Catalog chatbot
- Evaluation audit log
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from datasette import Response, hookimpl
from datasette.utils.asgi import Request

from vendor_intake import __version__
from vendor_intake.admission import AdmissionController, evaluate_and_admit
from vendor_intake.catalog import (
    DEFAULT_SEARCH_LIMIT,
    SQLiteCatalogStore,
    StoreError,
    build_catalog_store,
)
from vendor_intake.chat import CatalogChatbot
from vendor_intake.config import PLUGIN_NAME, IntakeConfig
from vendor_intake.gateway import ModelGateway
from vendor_intake.models import (
    CatalogEntry,
    Evaluation,
    IntakeDatabase,
    Submission,
    ValidationError,
)
from vendor_intake.pipeline import EvaluationPipeline

logger = logging.getLogger(__name__)

ROUTE_PREFIX = "/-/vendor-catalog"

# -----------------------------------------------------------------------------
# Plugin Configuration
# -----------------------------------------------------------------------------


def get_plugin_config(datasette) -> dict[str, Any]:
    """Get the raw plugin section from datasette.yaml."""
    return datasette.plugin_config(PLUGIN_NAME) or {}


def get_config(datasette) -> IntakeConfig:
    """Build the intake config from datasette.yaml plus environment overrides."""
    return IntakeConfig.from_plugin_config(get_plugin_config(datasette)).apply_env()


def ensure_db_exists(db_path: Path) -> None:
    """
    Create or upgrade the catalog database.

    Idempotent; runs any pending migrations.
    """
    from datasette_vendor_catalog.migrations import run_migrations

    run_migrations(db_path, verbose=False)


# -----------------------------------------------------------------------------
# Request / Response Helpers
# -----------------------------------------------------------------------------


async def read_json(request: Request) -> Any:
    """Decode the request body as JSON. An empty body reads as {}."""
    body = await request.post_body()
    if not body or not body.strip():
        return {}
    try:
        return json.loads(body)
    except ValueError:
        raise ValidationError("Request body must be valid JSON") from None


def json_error(message: str, status: int = 400, **extra: Any) -> Response:
    return Response.json({"success": False, "error": message, **extra}, status=status)


def method_not_allowed(request: Request) -> Response:
    return json_error(f"Method {request.method} not allowed", status=405)


def parse_float_arg(request: Request, *names: str) -> float | None:
    """Read an optional numeric query parameter under any of its names."""
    for name in names:
        value = request.args.get(name)
        if value not in (None, ""):
            try:
                return float(value)
            except ValueError:
                raise ValidationError(f"{name} must be a number", [name]) from None
    return None


def evaluation_metadata(
    config: IntakeConfig, evaluation: Evaluation, pipeline: EvaluationPipeline
) -> dict[str, Any]:
    return {
        "evaluated_at": datetime.now(UTC).isoformat(),
        "model": config.model.model,
        "threshold": evaluation.threshold,
        "evaluation_id": pipeline.audit_id,
        "agent_version": config.audit.agent_version,
    }


# -----------------------------------------------------------------------------
# Routes: service health
# -----------------------------------------------------------------------------


async def catalog_health(request: Request, datasette) -> Response:
    """Service status and active settings."""
    config = get_config(datasette)
    return Response.json(
        {
            "status": "healthy",
            "service": PLUGIN_NAME,
            "version": __version__,
            "model_runner_url": config.model.base_url,
            "model": config.model.model,
            "evaluation_threshold": config.evaluation_threshold,
            "acceptance_threshold": config.admission.acceptance_threshold,
            "catalog_backend": config.catalog.backend,
            "timestamp": datetime.now(UTC).isoformat(),
        }
    )


async def test_model_runner(request: Request, datasette) -> Response:
    """Check the model runner's health endpoint."""
    config = get_config(datasette)
    gateway = ModelGateway.from_config(config.model)
    health = await gateway.check_health()
    return Response.json(
        {**health.to_dict(), "model_runner_url": config.model.base_url},
        status=200 if health.connected else 503,
    )


# -----------------------------------------------------------------------------
# Routes: evaluation and submission
# -----------------------------------------------------------------------------


async def evaluate_product(request: Request, datasette) -> Response:
    """
    Evaluate a product submission.

    Responds with success=true whenever an evaluation was produced, including
    degraded fallback evaluations; the evaluation's error flag tells them apart.
    """
    if request.method != "POST":
        return method_not_allowed(request)

    try:
        submission = Submission.from_dict(await read_json(request))
        submission.validate()
    except ValidationError as e:
        return json_error(e.message, fields=e.fields, fallback_evaluation=None)

    config = get_config(datasette)
    ensure_db_exists(config.db_path)
    pipeline = EvaluationPipeline(config, IntakeDatabase(config.db_path))
    try:
        evaluation = await pipeline.evaluate(submission)
    except Exception as e:
        logger.exception("Evaluation failed")
        return json_error(
            "Evaluation failed",
            status=500,
            details=str(e),
            fallback_evaluation=pipeline.gateway_fallback(e).to_dict(),
        )
    finally:
        await pipeline.close()

    return Response.json(
        {
            "success": True,
            "evaluation": evaluation.to_dict(),
            "metadata": evaluation_metadata(config, evaluation, pipeline),
        }
    )


async def submit_product(request: Request, datasette) -> Response:
    """Evaluate a submission and admit it to the catalog if it passes."""
    if request.method != "POST":
        return method_not_allowed(request)

    try:
        submission = Submission.from_dict(await read_json(request))
        submission.validate()
    except ValidationError as e:
        return json_error(e.message, fields=e.fields)

    config = get_config(datasette)
    ensure_db_exists(config.db_path)
    pipeline = EvaluationPipeline(config, IntakeDatabase(config.db_path))
    controller = AdmissionController(
        build_catalog_store(config),
        acceptance_threshold=config.admission.acceptance_threshold,
    )
    try:
        evaluation, result = await evaluate_and_admit(pipeline, controller, submission)
    finally:
        await pipeline.close()

    body: dict[str, Any] = {
        "success": True,
        "evaluation": evaluation.to_dict(),
        "metadata": evaluation_metadata(config, evaluation, pipeline),
        "catalog_status": result.catalog_status,
        "message": result.message,
    }
    if result.product is not None:
        body["product"] = result.product
    if result.error:
        body["catalog_error"] = result.error
    return Response.json(body)


# -----------------------------------------------------------------------------
# Routes: catalog service
# -----------------------------------------------------------------------------


def get_store(datasette) -> SQLiteCatalogStore:
    config = get_config(datasette)
    ensure_db_exists(config.db_path)
    return SQLiteCatalogStore(config.db_path)


async def catalog_products(request: Request, datasette) -> Response:
    """GET lists products; POST stores one."""
    store = get_store(datasette)

    if request.method == "GET":
        return Response.json({"products": await store.list_entries()})

    if request.method != "POST":
        return method_not_allowed(request)

    try:
        entry = CatalogEntry.from_dict(await read_json(request))
    except ValidationError as e:
        return json_error(e.message, fields=e.fields)

    try:
        product = await store.insert(entry)
    except StoreError as e:
        return json_error(str(e), status=500)

    return Response.json({"success": True, "product": product}, status=201)


async def catalog_search(request: Request, datasette) -> Response:
    """Search products by text, category and price range."""
    try:
        min_price = parse_float_arg(request, "minPrice", "min_price")
        max_price = parse_float_arg(request, "maxPrice", "max_price")
        limit = int(request.args.get("limit") or DEFAULT_SEARCH_LIMIT)
    except ValidationError as e:
        return json_error(e.message, fields=e.fields)
    except ValueError:
        return json_error("limit must be an integer", fields=["limit"])

    store = get_store(datasette)
    products = store.search(
        request.args.get("q") or None,
        category=request.args.get("category") or None,
        min_price=min_price,
        max_price=max_price,
        status=request.args.get("status") or "active",
        limit=max(1, min(limit, 100)),
    )
    return Response.json({"products": products})


async def catalog_product_detail(request: Request, datasette) -> Response:
    product_id = int(request.url_vars["product_id"])
    product = get_store(datasette).get(product_id)
    if product is None:
        return json_error("Product not found", status=404)
    return Response.json({"product": product})


async def catalog_categories(request: Request, datasette) -> Response:
    return Response.json({"categories": get_store(datasette).categories()})


async def catalog_stats(request: Request, datasette) -> Response:
    return Response.json({"stats": get_store(datasette).stats()})


# -----------------------------------------------------------------------------
# Routes: chatbot
# -----------------------------------------------------------------------------


async def catalog_chat(request: Request, datasette) -> Response:
    """Answer a shopper's question about the catalog."""
    if request.method != "POST":
        return method_not_allowed(request)

    try:
        data = await read_json(request)
    except ValidationError as e:
        return json_error(e.message)

    message = data.get("message") if isinstance(data, dict) else None
    if not isinstance(message, str) or not message.strip():
        return json_error("Message is required")

    config = get_config(datasette)
    ensure_db_exists(config.db_path)
    chatbot = CatalogChatbot.from_config(config)
    try:
        reply = await chatbot.respond(message)
    except Exception as e:
        logger.exception("Chat request failed")
        return json_error(
            "Sorry, I encountered an error. Please try again.",
            status=500,
            details=str(e),
        )
    return Response.json(reply.to_dict())


# -----------------------------------------------------------------------------
# Routes: audit log
# -----------------------------------------------------------------------------


async def evaluation_list(request: Request, datasette) -> Response:
    """Most recent evaluations, newest first."""
    try:
        limit = int(request.args.get("limit") or 50)
    except ValueError:
        return json_error("limit must be an integer", fields=["limit"])

    config = get_config(datasette)
    ensure_db_exists(config.db_path)
    records = IntakeDatabase(config.db_path).get_recent_evaluations(limit=max(1, min(limit, 500)))
    return Response.json(
        {
            "evaluations": [
                {
                    "evaluation_id": record.evaluation_id,
                    "created_ts": record.created_ts,
                    "vendor_name": record.vendor_name,
                    "product_name": record.product_name,
                    "score": record.score,
                    "decision": record.decision,
                    "evaluation_method": record.evaluation_method,
                }
                for record in records
            ]
        }
    )


async def evaluation_detail(request: Request, datasette) -> Response:
    """One evaluation with its submission, raw model reply and event trail."""
    evaluation_id = request.url_vars["evaluation_id"]

    config = get_config(datasette)
    ensure_db_exists(config.db_path)
    db = IntakeDatabase(config.db_path)
    record = db.get_evaluation(evaluation_id)
    if record is None:
        return json_error("Evaluation not found", status=404)

    return Response.json(
        {
            "evaluation_id": record.evaluation_id,
            "created_ts": record.created_ts,
            "agent_version": record.agent_version,
            "submission": record.submission,
            "evaluation": record.evaluation,
            "raw_response": record.raw_response,
            "events": [
                {
                    "event_type": event.event_type,
                    "ts": event.ts,
                    "actor_id": event.actor_id,
                    "payload": event.payload,
                }
                for event in db.get_events(evaluation_id)
            ],
        }
    )


# -----------------------------------------------------------------------------
# Datasette Hooks
# -----------------------------------------------------------------------------


@hookimpl
def register_routes():
    """Register plugin routes with Datasette."""
    return [
        (r"^/-/vendor-catalog/health$", catalog_health),
        (r"^/-/vendor-catalog/test-model-runner$", test_model_runner),
        (r"^/-/vendor-catalog/evaluate$", evaluate_product),
        (r"^/-/vendor-catalog/submit$", submit_product),
        # Catalog service
        (r"^/-/vendor-catalog/products$", catalog_products),
        (r"^/-/vendor-catalog/products/search$", catalog_search),
        (r"^/-/vendor-catalog/products/(?P<product_id>\d+)$", catalog_product_detail),
        (r"^/-/vendor-catalog/categories$", catalog_categories),
        (r"^/-/vendor-catalog/stats$", catalog_stats),
        # Chatbot
        (r"^/-/vendor-catalog/chat$", catalog_chat),
        # Audit log
        (r"^/-/vendor-catalog/evaluations$", evaluation_list),
        (r"^/-/vendor-catalog/evaluations/(?P<evaluation_id>[0-9a-f]+)$", evaluation_detail),
    ]


@hookimpl
def extra_template_vars(datasette):
    """Provide extra template variables."""
    return {
        "vendor_catalog_version": __version__,
    }


@hookimpl
def skip_csrf(datasette, scope):
    """JSON API routes take JSON bodies from other services, not forms."""
    if scope.get("path", "").startswith(f"{ROUTE_PREFIX}/"):
        return True
    return None


@hookimpl
def startup(datasette):
    """Create or upgrade the catalog database on Datasette startup."""
    config = get_config(datasette)
    ensure_db_exists(config.db_path)
    logger.info(
        f"Vendor catalog ready: db={config.db_path}, model={config.model.model}, "
        f"threshold={config.evaluation_threshold}"
    )
