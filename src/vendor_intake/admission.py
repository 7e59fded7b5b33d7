"""
Catalog admission for evaluated submissions.

Approval and storage live in two independently owned places, and no
transaction spans them: an approved product whose insert fails comes back
as FAILED and needs a manual retry.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .catalog import CatalogStore
from .config import DEFAULT_THRESHOLD
from .models import CatalogEntry, Evaluation, EventType, Submission
from .pipeline import EvaluationPipeline

logger = logging.getLogger(__name__)


class AdmissionStatus(str, Enum):
    """Outcome of an admission attempt."""

    ADDED = "added"
    REJECTED = "rejected"
    FAILED = "failed"


# Status names the submission form switches on
CATALOG_STATUS = {
    AdmissionStatus.ADDED: "success",
    AdmissionStatus.REJECTED: "rejected",
    AdmissionStatus.FAILED: "failed",
}

AUDIT_EVENT = {
    AdmissionStatus.ADDED: EventType.ADMITTED,
    AdmissionStatus.REJECTED: EventType.ADMISSION_REJECTED,
    AdmissionStatus.FAILED: EventType.ADMISSION_FAILED,
}


@dataclass
class AdmissionResult:
    """Result of admitting one evaluated submission."""

    status: AdmissionStatus
    threshold: int
    catalog_entry: CatalogEntry | None = None
    product: dict[str, Any] | None = None
    error: str | None = None

    @property
    def catalog_status(self) -> str:
        return CATALOG_STATUS[self.status]

    @property
    def event_type(self) -> EventType:
        return AUDIT_EVENT[self.status]

    @property
    def message(self) -> str:
        if self.status == AdmissionStatus.ADDED:
            return "Product approved and added to catalog"
        if self.status == AdmissionStatus.REJECTED:
            return f"Product rejected (score below {self.threshold})"
        return (
            "Product was approved by AI but failed to add to catalog. "
            "Please try again."
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": self.status.value,
            "catalog_status": self.catalog_status,
            "message": self.message,
            "threshold": self.threshold,
        }
        if self.product is not None:
            result["product"] = self.product
        if self.error:
            result["error"] = self.error
        return result


class AdmissionController:
    """Apply the acceptance threshold and store approved products."""

    def __init__(self, store: CatalogStore, acceptance_threshold: int = DEFAULT_THRESHOLD):
        self.store = store
        self.acceptance_threshold = acceptance_threshold

    async def admit(self, submission: Submission, evaluation: Evaluation) -> AdmissionResult:
        """
        Admit a product to the catalog if its score clears the threshold.

        Only the score is compared; the evaluation's stated decision is not
        re-derived here.
        """
        if evaluation.score < self.acceptance_threshold:
            logger.info(
                f"Product {submission.product_name!r} rejected with score "
                f"{evaluation.score} (threshold: {self.acceptance_threshold})"
            )
            return AdmissionResult(
                status=AdmissionStatus.REJECTED,
                threshold=self.acceptance_threshold,
            )

        entry = CatalogEntry.from_submission(submission, evaluation)
        logger.info(
            f"Product {submission.product_name!r} approved with score "
            f"{evaluation.score}, adding to catalog"
        )

        try:
            product = await self.store.insert(entry)
        except Exception as e:
            logger.exception(f"Approved product {submission.product_name!r} not added to catalog")
            return AdmissionResult(
                status=AdmissionStatus.FAILED,
                threshold=self.acceptance_threshold,
                catalog_entry=entry,
                error=str(e),
            )

        return AdmissionResult(
            status=AdmissionStatus.ADDED,
            threshold=self.acceptance_threshold,
            catalog_entry=entry,
            product=product,
        )


async def evaluate_and_admit(
    pipeline: EvaluationPipeline,
    controller: AdmissionController,
    submission: Submission,
) -> tuple[Evaluation, AdmissionResult]:
    """
    Run the full submission flow: evaluate, admit, and note the outcome.

    The admission outcome is appended to the evaluation's audit trail when
    the evaluation was stored; a failure to do so is only logged.

    Raises:
        ValidationError: If the submission is incomplete
    """
    evaluation = await pipeline.evaluate(submission)
    result = await controller.admit(submission, evaluation)

    evaluation_id = pipeline.audit_id
    if evaluation_id and pipeline.db is not None:
        payload: dict[str, Any] = {"status": result.status.value, "threshold": result.threshold}
        if result.product and "id" in result.product:
            payload["product_id"] = result.product["id"]
        if result.error:
            payload["error"] = result.error
        try:
            pipeline.db.add_event(evaluation_id, result.event_type, payload=payload)
        except Exception:
            logger.exception(f"Could not record admission outcome for {evaluation_id}")

    return evaluation, result
