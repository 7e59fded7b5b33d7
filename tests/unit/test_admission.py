"""Tests for catalog admission."""

from unittest.mock import AsyncMock

import pytest

from vendor_intake.admission import (
    AdmissionController,
    AdmissionResult,
    AdmissionStatus,
    evaluate_and_admit,
)
from vendor_intake.catalog import SQLiteCatalogStore, StoreError
from vendor_intake.gateway import GatewayError, GatewayErrorKind
from vendor_intake.models import (
    Decision,
    Evaluation,
    EvaluationMethod,
    EventType,
    IntakeDatabase,
    MarketPotential,
)
from vendor_intake.pipeline import EvaluationPipeline


def make_evaluation(score: int, decision: Decision = Decision.APPROVED) -> Evaluation:
    return Evaluation(
        score=score,
        decision=decision,
        reasoning="Reasoning",
        category_match="Fit",
        market_potential=MarketPotential.for_score(score),
        threshold=70,
        evaluation_method=EvaluationMethod.MODEL,
    )


class TestAdmissionController:
    """Tests for AdmissionController.admit()."""

    async def test_approved_product_is_added(self, db_path, smart_watch):
        """TechCorp Smart Watch scored 85 ends up in the catalog."""
        store = SQLiteCatalogStore(db_path)
        controller = AdmissionController(store, acceptance_threshold=70)

        result = await controller.admit(smart_watch, make_evaluation(85))

        assert result.status == AdmissionStatus.ADDED
        assert result.catalog_status == "success"
        assert result.message == "Product approved and added to catalog"
        assert result.product["name"] == "Smart Watch"
        assert result.product["ai_evaluation"]["score"] == 85
        assert result.product["ai_evaluation"]["decision"] == "APPROVED"
        assert [p["name"] for p in await store.list_entries()] == ["Smart Watch"]

    async def test_threshold_boundary(self, smart_watch):
        """69 is rejected without touching the store; 70 is admitted."""
        store = AsyncMock()
        store.insert.return_value = {"id": 1}
        controller = AdmissionController(store, acceptance_threshold=70)

        rejected = await controller.admit(smart_watch, make_evaluation(69))
        store.insert.assert_not_called()
        added = await controller.admit(smart_watch, make_evaluation(70))

        assert rejected.status == AdmissionStatus.REJECTED
        assert rejected.catalog_status == "rejected"
        assert rejected.message == "Product rejected (score below 70)"
        assert added.status == AdmissionStatus.ADDED
        store.insert.assert_awaited_once()

    async def test_uses_score_not_stated_decision(self, smart_watch):
        """A REJECTED decision with a passing score is still admitted."""
        store = AsyncMock()
        store.insert.return_value = {"id": 1}
        controller = AdmissionController(store, acceptance_threshold=70)

        result = await controller.admit(smart_watch, make_evaluation(80, Decision.REJECTED))

        assert result.status == AdmissionStatus.ADDED
        entry = store.insert.call_args.args[0]
        assert entry.ai_evaluation.decision == "REJECTED"

    async def test_store_failure_is_failed_not_rejected(self, smart_watch):
        store = AsyncMock()
        store.insert.side_effect = StoreError("catalog service down")
        controller = AdmissionController(store, acceptance_threshold=70)

        result = await controller.admit(smart_watch, make_evaluation(85))

        assert result.status == AdmissionStatus.FAILED
        assert result.catalog_status == "failed"
        assert result.error == "catalog service down"
        assert "approved by AI but failed to add to catalog" in result.message
        assert result.catalog_entry.name == "Smart Watch"

    async def test_unexpected_store_error_is_failed(self, smart_watch):
        store = AsyncMock()
        store.insert.side_effect = RuntimeError("boom")
        controller = AdmissionController(store)

        result = await controller.admit(smart_watch, make_evaluation(85))

        assert result.status == AdmissionStatus.FAILED

    @pytest.mark.parametrize(
        "status, event_type",
        [
            (AdmissionStatus.ADDED, EventType.ADMITTED),
            (AdmissionStatus.REJECTED, EventType.ADMISSION_REJECTED),
            (AdmissionStatus.FAILED, EventType.ADMISSION_FAILED),
        ],
    )
    def test_event_type(self, status, event_type):
        assert AdmissionResult(status=status, threshold=70).event_type == event_type


class TestEvaluateAndAdmit:
    """Tests for the full submission flow."""

    async def test_outcome_recorded_in_audit_trail(self, config, db_path, smart_watch, completion):
        gateway = AsyncMock()
        gateway.invoke.return_value = completion(
            '{"score": 85, "decision": "APPROVED", "reasoning": "Good"}'
        )
        db = IntakeDatabase(db_path)
        pipeline = EvaluationPipeline(config, db, gateway=gateway)
        controller = AdmissionController(SQLiteCatalogStore(db_path))

        evaluation, result = await evaluate_and_admit(pipeline, controller, smart_watch)

        assert evaluation.score == 85
        assert result.status == AdmissionStatus.ADDED
        events = db.get_events(pipeline.audit_id)
        assert [e.event_type for e in events] == ["evaluated", "admitted"]
        assert events[1].payload["product_id"] == result.product["id"]

    async def test_store_failure_after_gateway_outage(self, config, smart_watch):
        """Model unreachable: approved by default, store attempted, failure reported."""
        gateway = AsyncMock()
        gateway.invoke.side_effect = GatewayError(GatewayErrorKind.UNAVAILABLE, "refused")
        store = AsyncMock()
        store.insert.side_effect = StoreError("down")
        pipeline = EvaluationPipeline(config, gateway=gateway)

        evaluation, result = await evaluate_and_admit(
            pipeline, AdmissionController(store), smart_watch
        )

        assert evaluation.score == 75
        assert evaluation.error is True
        store.insert.assert_awaited_once()
        assert result.status == AdmissionStatus.FAILED
