"""
Evaluation pipeline for vendor-intake.

Validates a submission, asks the model for a verdict, parses the reply,
and then hands the finished Evaluation to best-effort sinks (audit log,
event stream). Sink failures are logged and never change the result.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from .config import IntakeConfig
from .events import KafkaEventPublisher
from .gateway import GatewayError, GatewayErrorKind, ModelGateway
from .models import (
    Decision,
    Evaluation,
    EvaluationMethod,
    EventType,
    IntakeDatabase,
    MarketPotential,
    Submission,
)
from .parser import EvaluationParser
from .prompts import build_evaluation_messages

logger = logging.getLogger(__name__)

SAFE_DEFAULT_SCORE = 75


@dataclass
class SinkResult:
    """Result from a side-effect sink."""

    success: bool
    message: str | None = None
    data: dict[str, Any] | None = None


class EvaluationSink(ABC):
    """Base class for post-evaluation side effects."""

    name: str = "base"

    def __init__(self, config: IntakeConfig):
        self.config = config

    @abstractmethod
    async def record(
        self, submission: Submission, evaluation: Evaluation, raw_reply: Any
    ) -> SinkResult:
        """Record a finished evaluation."""
        pass

    def is_enabled(self) -> bool:
        """Check if this sink is enabled in config."""
        return True


class AuditLogSink(EvaluationSink):
    """Store the submission, the evaluation and the raw model reply."""

    name = "audit_log"

    def __init__(self, config: IntakeConfig, db: IntakeDatabase | None):
        super().__init__(config)
        self.db = db

    def is_enabled(self) -> bool:
        return self.config.audit.enabled and self.db is not None

    async def record(
        self, submission: Submission, evaluation: Evaluation, raw_reply: Any
    ) -> SinkResult:
        try:
            evaluation_id = self.db.save_evaluation(
                submission,
                evaluation,
                raw_response=raw_reply,
                agent_version=self.config.audit.agent_version,
            )
            self.db.add_event(
                evaluation_id,
                EventType.GATEWAY_FAILED if evaluation.error else EventType.EVALUATED,
                payload={
                    "score": evaluation.score,
                    "decision": evaluation.decision.value,
                    "evaluation_method": evaluation.evaluation_method.value,
                    "processing_time_ms": evaluation.processing_time_ms,
                },
            )
            logger.info(f"Evaluation {evaluation_id} stored in audit log")
            return SinkResult(
                success=True,
                message="Evaluation stored",
                data={"evaluation_id": evaluation_id},
            )
        except Exception as e:
            logger.exception("Audit log storage failed (continuing)")
            return SinkResult(success=False, message=f"Audit log storage failed: {e}")


class EventPublishSink(EvaluationSink):
    """Publish the evaluation to the configured Kafka topic."""

    name = "event_publish"

    def __init__(self, config: IntakeConfig, publisher: KafkaEventPublisher | None = None):
        super().__init__(config)
        self._publisher = publisher

    def is_enabled(self) -> bool:
        return self.config.events.enabled

    def _get_publisher(self) -> KafkaEventPublisher:
        if self._publisher is None:
            self._publisher = KafkaEventPublisher.from_config(self.config.events)
        return self._publisher

    async def record(
        self, submission: Submission, evaluation: Evaluation, raw_reply: Any
    ) -> SinkResult:
        try:
            await self._get_publisher().publish(
                self.config.events.topic,
                {
                    "product": submission.to_dict(),
                    "evaluation": evaluation.to_dict(),
                    "timestamp": datetime.now(UTC).isoformat(),
                },
                key=submission.product_name or "unknown",
            )
            logger.info(f"Evaluation published to {self.config.events.topic}")
            return SinkResult(success=True, message="Evaluation published")
        except Exception as e:
            logger.exception("Event publish failed (continuing)")
            return SinkResult(success=False, message=f"Event publish failed: {e}")

    async def close(self) -> None:
        if self._publisher is not None:
            await self._publisher.stop()


class EvaluationPipeline:
    """
    Evaluate a submission end to end.

    evaluate() only raises ValidationError; every other failure turns into
    an Evaluation so a submission is never left without a verdict.
    """

    def __init__(
        self,
        config: IntakeConfig,
        db: IntakeDatabase | None = None,
        gateway: ModelGateway | None = None,
        parser: EvaluationParser | None = None,
        publisher: KafkaEventPublisher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Intake configuration
            db: Audit database (audit logging is skipped without one)
            gateway: Optional ModelGateway (for testing)
            parser: Optional EvaluationParser, e.g. with a seeded random source
            publisher: Optional event publisher (for testing)
            clock: Monotonic clock in seconds
        """
        self.config = config
        self.db = db
        self.gateway = gateway or ModelGateway.from_config(config.model)
        self.parser = parser or EvaluationParser()
        self.clock = clock
        self.event_sink = EventPublishSink(config, publisher)
        self.sinks: list[EvaluationSink] = [
            AuditLogSink(config, db),
            self.event_sink,
        ]
        self.sink_results: dict[str, SinkResult] = {}

    @property
    def threshold(self) -> int:
        return self.config.evaluation_threshold

    @property
    def audit_id(self) -> str | None:
        """Audit log ID of the last evaluation, if it was stored."""
        result = self.sink_results.get(AuditLogSink.name)
        if result and result.success and result.data:
            return result.data.get("evaluation_id")
        return None

    def gateway_fallback(self, error: Exception) -> Evaluation:
        """Safe default used when the model could not be reached: approve for review."""
        return Evaluation(
            score=SAFE_DEFAULT_SCORE,
            decision=Decision.APPROVED,
            reasoning="Automatic approval due to AI service error - manual review recommended",
            category_match="Unable to assess due to system error",
            market_potential=MarketPotential.MEDIUM,
            threshold=self.threshold,
            evaluation_method=EvaluationMethod.ERROR_FALLBACK,
            error=True,
            error_message=str(error),
        )

    async def evaluate(self, submission: Submission) -> Evaluation:
        """
        Evaluate a submission.

        Raises:
            ValidationError: If product name or description is missing
        """
        submission.validate()

        started = self.clock()
        logger.info(
            f"Evaluating product {submission.product_name!r} from {submission.vendor_name!r}"
        )

        messages = build_evaluation_messages(submission, self.threshold)
        raw_reply: Any = None
        try:
            raw_reply = await self.gateway.invoke(messages)
        except GatewayError as e:
            logger.error(f"Model gateway failed ({e.kind.value}): {e.message}")
            evaluation = self.gateway_fallback(e)
        except Exception as e:
            logger.exception("Unexpected model gateway failure")
            evaluation = self.gateway_fallback(GatewayError(GatewayErrorKind.UNKNOWN, str(e)))
        else:
            evaluation = self.parser.parse(raw_reply, submission, self.threshold)

        elapsed_ms = max(0, int((self.clock() - started) * 1000))
        evaluation = replace(evaluation, processing_time_ms=elapsed_ms)

        logger.info(
            f"Evaluation result for {submission.product_name!r}: "
            f"score={evaluation.score}/100, decision={evaluation.decision.value}, "
            f"method={evaluation.evaluation_method.value}, time={elapsed_ms}ms"
        )

        await self._record(submission, evaluation, raw_reply)
        return evaluation

    async def _record(self, submission: Submission, evaluation: Evaluation, raw_reply: Any) -> None:
        self.sink_results = {}
        for sink in self.sinks:
            if not sink.is_enabled():
                logger.debug(f"Skipping disabled sink: {sink.name}")
                continue
            try:
                result = await sink.record(submission, evaluation, raw_reply)
            except Exception as e:
                logger.exception(f"Sink {sink.name} failed")
                result = SinkResult(success=False, message=str(e))
            if not result.success:
                logger.warning(f"Sink {sink.name} failed: {result.message}")
            self.sink_results[sink.name] = result

    async def close(self) -> None:
        """Release the event publisher, if one was started."""
        try:
            await self.event_sink.close()
        except Exception:
            logger.exception("Error closing event publisher")
