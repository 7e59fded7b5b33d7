"""Shared pytest fixtures for vendor catalog tests."""

import random

import pytest
from datasette.app import Datasette

from datasette_vendor_catalog.migrations import run_migrations
from vendor_intake.config import IntakeConfig
from vendor_intake.models import Submission

MODEL_RUNNER_URL = "http://fake-model-runner:12434"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment overrides out of the tests."""
    for name in (
        "VENDOR_EVALUATION_THRESHOLD",
        "ACCEPTANCE_THRESHOLD",
        "MODEL_RUNNER_URL",
        "MODEL_RUNNER_MODEL",
        "AI_DEFAULT_MODEL",
        "MODEL_RUNNER_TIMEOUT",
        "CATALOG_API_URL",
        "CATALOG_TIMEOUT",
        "KAFKA_BROKERS",
        "VENDOR_CATALOG_DB",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_path(tmp_path):
    """Create a temporary database with full schema via migrations.

    This is the canonical way to get a test database - uses the same
    migration system as production.
    """
    db_file = tmp_path / "test_catalog.db"
    run_migrations(db_file, verbose=False)
    return db_file


@pytest.fixture
def config(db_path):
    """Intake config pointed at the temporary database and a fake model runner."""
    return IntakeConfig.from_dict(
        {
            "db_path": str(db_path),
            "model": {"base_url": MODEL_RUNNER_URL},
        }
    )


@pytest.fixture
def rng():
    """Seeded random source for fallback scores."""
    return random.Random(1234)


@pytest.fixture
def smart_watch():
    """The reference submission used across tests."""
    return Submission.from_dict(
        {
            "vendorName": "TechCorp",
            "productName": "Smart Watch",
            "description": "Fitness tracking watch with heart rate monitor and GPS",
            "price": 299.99,
            "category": "Electronics",
        }
    )


@pytest.fixture
def datasette(db_path):
    """Create a Datasette instance with the plugin configured.

    Uses config= (not metadata=) for Datasette v1 compatibility.
    """
    return Datasette(
        [str(db_path)],
        config={
            "plugins": {
                "datasette-vendor-catalog": {
                    "catalog_db_path": str(db_path),
                    "intake": {
                        "model": {"base_url": MODEL_RUNNER_URL},
                    },
                }
            },
        },
    )


def _completion(content: str) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


@pytest.fixture
def completion():
    """Build an OpenAI-style chat completion body wrapping the given content."""
    return _completion

