"""
CLI runner for vendor-intake.

Usage:
    python -m vendor_intake.run [OPTIONS]

    # Evaluate a submission stored as JSON
    python -m vendor_intake.run --file submission.json

    # Evaluate and admit to the catalog
    python -m vendor_intake.run --product "Smart Watch" --description "..." --admit

    # Check the model runner
    python -m vendor_intake.run --check-model
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .admission import AdmissionController, AdmissionStatus, evaluate_and_admit
from .catalog import StoreError, build_catalog_store
from .config import IntakeConfig
from .gateway import ModelGateway
from .models import IntakeDatabase, Submission, ValidationError
from .pipeline import EvaluationPipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("vendor-intake")


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def load_submission(args: argparse.Namespace) -> Submission:
    """Build a submission from --file or the individual field flags."""
    if args.file:
        with open(args.file) as f:
            data = json.load(f)
    else:
        data = {
            "vendorName": args.vendor,
            "productName": args.product,
            "description": args.description,
            "price": args.price,
            "category": args.category,
        }
    return Submission.from_dict(data)


async def evaluate_only(config: IntakeConfig, submission: Submission) -> int:
    """Evaluate a submission and print the verdict."""
    db = IntakeDatabase(config.db_path)
    pipeline = EvaluationPipeline(config, db)
    try:
        evaluation = await pipeline.evaluate(submission)
    finally:
        await pipeline.close()

    print_json(evaluation.to_dict())
    return 0


async def evaluate_and_submit(config: IntakeConfig, submission: Submission) -> int:
    """Evaluate a submission, then admit it to the catalog if it passes."""
    db = IntakeDatabase(config.db_path)
    pipeline = EvaluationPipeline(config, db)
    controller = AdmissionController(
        build_catalog_store(config),
        acceptance_threshold=config.admission.acceptance_threshold,
    )
    try:
        evaluation, result = await evaluate_and_admit(pipeline, controller, submission)
    finally:
        await pipeline.close()

    print_json({"evaluation": evaluation.to_dict(), "admission": result.to_dict()})
    logger.info(result.message)
    return 1 if result.status == AdmissionStatus.FAILED else 0


async def check_model(config: IntakeConfig) -> int:
    gateway = ModelGateway.from_config(config.model)
    health = await gateway.check_health()
    print_json(health.to_dict())
    return 0 if health.connected else 1


async def list_products(config: IntakeConfig) -> int:
    store = build_catalog_store(config)
    try:
        products = await store.list_entries()
    except StoreError as e:
        logger.error(f"Could not list products: {e}")
        return 1

    for product in products:
        score = product.get("ai_score")
        print(
            f"{product.get('id', '-'):>5}  {product.get('name', '')}  "
            f"${float(product.get('price') or 0):.2f}  "
            f"[{product.get('category') or 'uncategorized'}]  "
            f"score={score if score is not None else '-'}"
        )
    logger.info(f"{len(products)} product(s) in catalog ({store.name})")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="vendor-intake: AI evaluation of vendor product submissions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Evaluate a submission file
    python -m vendor_intake.run --file submission.json

    # Evaluate from flags and add to the catalog if approved
    python -m vendor_intake.run --vendor TechCorp --product "Smart Watch" \\
        --description "Fitness tracking watch" --price 299.99 --category Electronics --admit

    # Check the model runner
    python -m vendor_intake.run --check-model

    # Use a specific config file
    python -m vendor_intake.run --config datasette.yaml --list-products
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("datasette.yaml"),
        help="Path to config file (default: datasette.yaml)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="Override database path from config",
    )
    parser.add_argument(
        "--file",
        type=Path,
        help="JSON file holding the submission",
    )
    parser.add_argument("--vendor", type=str, help="Vendor name")
    parser.add_argument("--product", type=str, help="Product name")
    parser.add_argument("--description", type=str, help="Product description")
    parser.add_argument("--price", type=str, help="Product price")
    parser.add_argument("--category", type=str, help="Product category")
    parser.add_argument(
        "--admit",
        action="store_true",
        help="Add the product to the catalog when its score clears the threshold",
    )
    parser.add_argument(
        "--check-model",
        action="store_true",
        help="Check the model runner health endpoint and exit",
    )
    parser.add_argument(
        "--list-products",
        action="store_true",
        help="Print the catalog and exit",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load config
    config = IntakeConfig.from_yaml(args.config).apply_env()
    if args.db:
        config.db_path = args.db

    logger.info(f"Config loaded from {args.config}")
    logger.info(f"Database: {config.db_path}")
    logger.info(
        f"Model: {config.model.model} at {config.model.base_url}, "
        f"thresholds: evaluation={config.evaluation_threshold}, "
        f"acceptance={config.admission.acceptance_threshold}"
    )

    if args.check_model:
        return asyncio.run(check_model(config))

    # Everything below reads or writes the local database
    if not config.db_path.exists():
        logger.error(f"Database not found: {config.db_path}")
        logger.error("Run 'python scripts/init_db.py' first to create the database.")
        return 1

    if args.list_products:
        return asyncio.run(list_products(config))

    if not args.file and not args.product:
        parser.print_help()
        return 0

    try:
        submission = load_submission(args)
        submission.validate()
    except ValidationError as e:
        logger.error(f"Invalid submission: {e.message}")
        return 2
    except (OSError, ValueError) as e:
        logger.error(f"Could not read submission: {e}")
        return 2

    if args.admit:
        return asyncio.run(evaluate_and_submit(config, submission))
    return asyncio.run(evaluate_only(config, submission))


if __name__ == "__main__":
    sys.exit(main())
