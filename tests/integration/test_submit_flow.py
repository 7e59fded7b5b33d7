"""Integration tests for the vendor submission flow: evaluate, then admit."""

import json
import sqlite3
from unittest.mock import AsyncMock, patch

import pytest

from vendor_intake.catalog import StoreError
from vendor_intake.gateway import GatewayError, GatewayErrorKind

SUBMIT_URL = "/-/vendor-catalog/submit"


@pytest.fixture
def payload():
    return {
        "vendorName": "TechCorp",
        "productName": "Smart Watch",
        "description": "Fitness tracking watch with heart rate monitor and GPS",
        "price": 299.99,
        "category": "Electronics",
    }


def scored(completion, score, decision):
    return completion(
        json.dumps(
            {
                "score": score,
                "decision": decision,
                "reasoning": "Assessment",
                "category_match": "Fit",
                "market_potential": "Medium",
            }
        )
    )


def product_names(db_path):
    conn = sqlite3.connect(db_path)
    try:
        return [row[0] for row in conn.execute("SELECT name FROM products ORDER BY id")]
    finally:
        conn.close()


class TestSubmitFlow:
    """Tests for POST /-/vendor-catalog/submit."""

    async def test_approved_product_added(self, datasette, payload, completion, db_path):
        with patch(
            "vendor_intake.gateway.ModelGateway.invoke",
            new_callable=AsyncMock,
            return_value=scored(completion, 85, "APPROVED"),
        ):
            response = await datasette.client.post(SUBMIT_URL, json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["catalog_status"] == "success"
        assert data["message"] == "Product approved and added to catalog"
        assert data["product"]["name"] == "Smart Watch"
        assert data["product"]["ai_evaluation"]["score"] == 85
        assert product_names(db_path) == ["Smart Watch"]

    async def test_low_score_rejected(self, datasette, payload, completion, db_path):
        with patch(
            "vendor_intake.gateway.ModelGateway.invoke",
            new_callable=AsyncMock,
            return_value=scored(completion, 69, "REJECTED"),
        ):
            response = await datasette.client.post(SUBMIT_URL, json=payload)

        data = response.json()
        assert data["catalog_status"] == "rejected"
        assert data["message"] == "Product rejected (score below 70)"
        assert "product" not in data
        assert product_names(db_path) == []

    async def test_admission_uses_score(self, datasette, payload, completion, db_path):
        """A passing score is admitted even when the model said REJECTED."""
        with patch(
            "vendor_intake.gateway.ModelGateway.invoke",
            new_callable=AsyncMock,
            return_value=scored(completion, 72, "REJECTED"),
        ):
            response = await datasette.client.post(SUBMIT_URL, json=payload)

        data = response.json()
        assert data["evaluation"]["decision"] == "REJECTED"
        assert data["catalog_status"] == "success"
        assert product_names(db_path) == ["Smart Watch"]

    async def test_model_down_default_is_admitted(self, datasette, payload, db_path):
        with patch(
            "vendor_intake.gateway.ModelGateway.invoke",
            new_callable=AsyncMock,
            side_effect=GatewayError(GatewayErrorKind.UNAVAILABLE, "refused"),
        ):
            response = await datasette.client.post(SUBMIT_URL, json=payload)

        data = response.json()
        assert data["evaluation"]["score"] == 75
        assert data["evaluation"]["error"] is True
        assert data["catalog_status"] == "success"
        assert product_names(db_path) == ["Smart Watch"]

    async def test_store_failure_reported(self, datasette, payload, completion, db_path):
        with (
            patch(
                "vendor_intake.gateway.ModelGateway.invoke",
                new_callable=AsyncMock,
                return_value=scored(completion, 90, "APPROVED"),
            ),
            patch(
                "vendor_intake.catalog.SQLiteCatalogStore.insert",
                new_callable=AsyncMock,
                side_effect=StoreError("catalog unavailable"),
            ),
        ):
            response = await datasette.client.post(SUBMIT_URL, json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["catalog_status"] == "failed"
        assert data["catalog_error"] == "catalog unavailable"
        assert "failed to add to catalog" in data["message"]
        assert product_names(db_path) == []

    async def test_outcome_in_audit_trail(self, datasette, payload, completion):
        with patch(
            "vendor_intake.gateway.ModelGateway.invoke",
            new_callable=AsyncMock,
            return_value=scored(completion, 40, "REJECTED"),
        ):
            response = await datasette.client.post(SUBMIT_URL, json=payload)
        evaluation_id = response.json()["metadata"]["evaluation_id"]

        detail = await datasette.client.get(f"/-/vendor-catalog/evaluations/{evaluation_id}")

        events = detail.json()["events"]
        assert [e["event_type"] for e in events] == ["evaluated", "admission_rejected"]
        assert events[1]["payload"]["threshold"] == 70

    async def test_validation_error(self, datasette):
        response = await datasette.client.post(SUBMIT_URL, json={"productName": "Mug"})

        assert response.status_code == 400
        assert response.json()["fields"] == ["description"]
