"""
Data models and audit database operations for vendor-intake.
"""

import json
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any


class ValidationError(ValueError):
    """A submission is missing required fields or carries invalid values."""

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or []


class Decision(str, Enum):
    """Verdict on a submission."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @classmethod
    def for_score(cls, score: int, threshold: int) -> "Decision":
        return cls.APPROVED if score >= threshold else cls.REJECTED

    @classmethod
    def parse(cls, value: Any) -> "Decision | None":
        """Parse a decision string case-insensitively; None if unrecognized."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class MarketPotential(str, Enum):
    """Market potential band."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def for_score(cls, score: int) -> "MarketPotential":
        if score >= 85:
            return cls.HIGH
        if score >= 70:
            return cls.MEDIUM
        return cls.LOW

    @classmethod
    def parse(cls, value: Any) -> "MarketPotential | None":
        if not isinstance(value, str):
            return None
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        return None


class EvaluationMethod(str, Enum):
    """How an evaluation was produced."""

    MODEL = "model"
    TEXT_FALLBACK = "text_fallback"
    ERROR_FALLBACK = "error_fallback"


class EventType(str, Enum):
    """Types of events in the evaluation audit trail."""

    EVALUATED = "evaluated"
    GATEWAY_FAILED = "gateway_failed"
    ADMITTED = "admitted"
    ADMISSION_REJECTED = "admission_rejected"
    ADMISSION_FAILED = "admission_failed"


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_price(value: Any) -> Decimal:
    """Parse a price into a non-negative Decimal; missing means 0."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal("0")
    if isinstance(value, bool):
        raise ValidationError("Price must be a number", ["price"])
    try:
        price = Decimal(str(value).strip().lstrip("$"))
    except InvalidOperation:
        raise ValidationError("Price must be a number", ["price"]) from None
    if not price.is_finite():
        raise ValidationError("Price must be a number", ["price"])
    if price < 0:
        raise ValidationError("Price must not be negative", ["price"])
    return price


@dataclass(frozen=True)
class Submission:
    """A vendor's product submission awaiting evaluation."""

    vendor_name: str
    product_name: str
    description: str
    price: Decimal = Decimal("0")
    category: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Submission":
        """
        Build a submission from a request payload.

        Accepts the form's camelCase keys (vendorName, productName) as well
        as snake_case.
        """
        if not isinstance(data, dict):
            raise ValidationError("Submission must be a JSON object")

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        category = _clean(pick("category"))
        return cls(
            vendor_name=_clean(pick("vendorName", "vendor_name", "vendor")),
            product_name=_clean(pick("productName", "product_name", "name")),
            description=_clean(pick("description")),
            price=parse_price(pick("price")),
            category=category or None,
        )

    def validate(self) -> None:
        """Raise ValidationError unless product name and description are present."""
        missing = []
        if not self.product_name.strip():
            missing.append("productName")
        if not self.description.strip():
            missing.append("description")
        if missing:
            raise ValidationError(
                "Missing required fields: productName and description are required",
                missing,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendorName": self.vendor_name,
            "productName": self.product_name,
            "description": self.description,
            "price": float(self.price),
            "category": self.category,
        }


@dataclass(frozen=True)
class Evaluation:
    """Structured scoring result for a submission. Never mutated after creation."""

    score: int
    decision: Decision
    reasoning: str
    category_match: str
    market_potential: MarketPotential
    threshold: int
    evaluation_method: EvaluationMethod
    processing_time_ms: int = 0
    error: bool = False
    error_message: str | None = None

    @property
    def approved(self) -> bool:
        return self.decision == Decision.APPROVED

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire format returned to callers."""
        result: dict[str, Any] = {
            "score": self.score,
            "decision": self.decision.value,
            "reasoning": self.reasoning,
            "category_match": self.category_match,
            "market_potential": self.market_potential.value,
            "threshold": self.threshold,
            "evaluation_method": self.evaluation_method.value,
            "processing_time_ms": self.processing_time_ms,
        }
        if self.error:
            result["error"] = True
            if self.error_message:
                result["error_message"] = self.error_message
        return result


@dataclass(frozen=True)
class EvaluationSummary:
    """The slice of an evaluation embedded in a catalog entry."""

    score: int
    decision: str
    evaluated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "decision": self.decision,
            "evaluated_at": self.evaluated_at,
        }


@dataclass
class CatalogEntry:
    """An approved product, as handed to the catalog store."""

    name: str
    description: str
    price: Decimal
    vendor: str
    category: str | None
    ai_evaluation: EvaluationSummary | None = None

    @classmethod
    def from_submission(
        cls,
        submission: Submission,
        evaluation: Evaluation,
        evaluated_at: str | None = None,
    ) -> "CatalogEntry":
        return cls(
            name=submission.product_name,
            description=submission.description,
            price=submission.price,
            vendor=submission.vendor_name,
            category=submission.category,
            ai_evaluation=EvaluationSummary(
                score=evaluation.score,
                decision=evaluation.decision.value,
                evaluated_at=evaluated_at or datetime.now(UTC).isoformat(),
            ),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogEntry":
        """
        Build an entry from a catalog API payload.

        Raises:
            ValidationError: If name or description is missing, or the
                price or ai_evaluation is malformed
        """
        if not isinstance(data, dict):
            raise ValidationError("Product must be a JSON object")

        name = _clean(data.get("name"))
        description = _clean(data.get("description"))
        missing = [
            key for key, value in (("name", name), ("description", description)) if not value
        ]
        if missing:
            raise ValidationError(
                "Missing required fields: name and description are required", missing
            )

        summary = None
        ai_evaluation = data.get("ai_evaluation")
        if ai_evaluation is not None:
            score = ai_evaluation.get("score") if isinstance(ai_evaluation, dict) else None
            if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
                raise ValidationError(
                    "ai_evaluation.score must be an integer between 0 and 100",
                    ["ai_evaluation"],
                )
            decision = Decision.parse(ai_evaluation.get("decision")) or Decision.APPROVED
            summary = EvaluationSummary(
                score=score,
                decision=decision.value,
                evaluated_at=_clean(ai_evaluation.get("evaluated_at"))
                or datetime.now(UTC).isoformat(),
            )

        category = _clean(data.get("category"))
        return cls(
            name=name,
            description=description,
            price=parse_price(data.get("price")),
            vendor=_clean(data.get("vendor")),
            category=category or None,
            ai_evaluation=summary,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "price": float(self.price),
            "vendor": self.vendor,
            "category": self.category,
        }
        if self.ai_evaluation is not None:
            result["ai_evaluation"] = self.ai_evaluation.to_dict()
        return result


@dataclass
class EvaluationRecord:
    """An audit log row for one evaluation."""

    evaluation_id: str
    created_ts: str
    vendor_name: str
    product_name: str
    submission_json: str
    evaluation_json: str
    score: int
    decision: str
    evaluation_method: str
    raw_response_json: str | None = None
    agent_version: str | None = None

    @property
    def submission(self) -> dict:
        return json.loads(self.submission_json)

    @property
    def evaluation(self) -> dict:
        return json.loads(self.evaluation_json)

    @property
    def raw_response(self) -> Any:
        """Parse raw_response_json."""
        if self.raw_response_json:
            return json.loads(self.raw_response_json)
        return None


@dataclass
class EvaluationEvent:
    """An audit trail entry for an evaluation."""

    event_id: str
    evaluation_id: str
    ts: str
    actor_id: str
    event_type: str
    payload_json: str | None = None

    @property
    def payload(self) -> dict | None:
        """Parse payload_json."""
        if self.payload_json:
            return json.loads(self.payload_json)
        return None


class IntakeDatabase:
    """Audit log operations for vendor-intake."""

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def save_evaluation(
        self,
        submission: Submission,
        evaluation: Evaluation,
        raw_response: Any = None,
        agent_version: str | None = None,
    ) -> str:
        """Store an evaluation with its submission and raw model reply."""
        evaluation_id = secrets.token_hex(16)
        now = datetime.now(UTC).isoformat()

        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO evaluations
                    (evaluation_id, created_ts, vendor_name, product_name,
                     submission_json, evaluation_json, raw_response_json,
                     score, decision, evaluation_method, agent_version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    evaluation_id,
                    now,
                    submission.vendor_name,
                    submission.product_name,
                    json.dumps(submission.to_dict()),
                    json.dumps(evaluation.to_dict()),
                    json.dumps(raw_response, default=str) if raw_response is not None else None,
                    evaluation.score,
                    evaluation.decision.value,
                    evaluation.evaluation_method.value,
                    agent_version,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        return evaluation_id

    def get_evaluation(self, evaluation_id: str) -> EvaluationRecord | None:
        """Get a single evaluation by ID."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "SELECT * FROM evaluations WHERE evaluation_id = ?",
                (evaluation_id,),
            )
            row = cursor.fetchone()
            return EvaluationRecord(**dict(row)) if row else None
        finally:
            conn.close()

    def get_recent_evaluations(self, limit: int = 50) -> list[EvaluationRecord]:
        """Get the most recent evaluations, newest first."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "SELECT * FROM evaluations ORDER BY created_ts DESC, rowid DESC LIMIT ?",
                (limit,),
            )
            return [EvaluationRecord(**dict(row)) for row in cursor.fetchall()]
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def add_event(
        self,
        evaluation_id: str,
        event_type: EventType,
        actor_id: str = "bot:vendor-intake",
        payload: dict | None = None,
    ) -> str:
        """Add an event to the audit trail."""
        event_id = secrets.token_hex(16)
        now = datetime.now(UTC).isoformat()

        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO evaluation_events
                    (event_id, evaluation_id, ts, actor_id, event_type, payload_json)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event_id,
                    evaluation_id,
                    now,
                    actor_id,
                    event_type.value,
                    json.dumps(payload) if payload else None,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        return event_id

    def get_events(self, evaluation_id: str) -> list[EvaluationEvent]:
        """Get all events for an evaluation."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "SELECT * FROM evaluation_events WHERE evaluation_id = ? ORDER BY ts, rowid",
                (evaluation_id,),
            )
            return [EvaluationEvent(**dict(row)) for row in cursor.fetchall()]
        finally:
            conn.close()

    def purge_evaluations(self, older_than: datetime, dry_run: bool = False) -> int:
        """
        Delete evaluations created before a cutoff, with their event trails.

        Catalog products are not touched. Returns the number of evaluations
        removed, or that would be removed when dry_run is set.
        """
        cutoff = older_than.isoformat()
        conn = self._connect()
        try:
            count = conn.execute(
                "SELECT COUNT(*) FROM evaluations WHERE created_ts < ?", (cutoff,)
            ).fetchone()[0]
            if dry_run or not count:
                return count

            conn.execute(
                """
                DELETE FROM evaluation_events WHERE evaluation_id IN
                    (SELECT evaluation_id FROM evaluations WHERE created_ts < ?)
                """,
                (cutoff,),
            )
            conn.execute("DELETE FROM evaluations WHERE created_ts < ?", (cutoff,))
            conn.commit()
            return count
        finally:
            conn.close()
