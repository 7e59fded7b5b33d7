"""
Model gateway for vendor-intake.

Wraps a single OpenAI-compatible chat completion call against a model
runner (e.g. Docker Model Runner, which serves the API under /engines/v1).
Transport failures are normalized into GatewayError; retries are left to
the caller.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .config import ModelConfig

logger = logging.getLogger(__name__)

API_PATH = "engines/v1"
COMPLETION_PATH = "chat/completions"
HEALTH_TIMEOUT_SECONDS = 10.0


class Role(str, Enum):
    """Chat turn role."""

    SYSTEM = "system"
    USER = "user"


@dataclass(frozen=True)
class ChatMessage:
    """A single chat turn sent to the model."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class GatewayErrorKind(str, Enum):
    """Classification of model gateway failures."""

    UNAVAILABLE = "unavailable"
    ENDPOINT_NOT_FOUND = "endpoint_not_found"
    REMOTE_ERROR = "remote_error"
    UNKNOWN = "unknown"


class GatewayError(Exception):
    """The model endpoint could not produce a reply."""

    def __init__(
        self,
        kind: GatewayErrorKind,
        message: str,
        attempted_url: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.attempted_url = attempted_url
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.attempted_url:
            result["attempted_url"] = self.attempted_url
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


@dataclass
class ModelHealth:
    """Result of probing the model runner's health endpoint."""

    connected: bool
    health_url: str
    response: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": "connected" if self.connected else "disconnected",
            "health_url": self.health_url,
        }
        if self.response is not None:
            result["model_runner_health"] = self.response
        if self.error:
            result["error"] = self.error
        return result


def _join(base: str, path: str) -> str:
    """Join URL segments with exactly one separator."""
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def normalize_messages(
    messages: Sequence[ChatMessage | Mapping[str, Any]],
) -> list[dict[str, str]]:
    """
    Validate chat turns and convert them to the wire format.

    Raises ValueError for an empty sequence, an unknown role, or empty content.
    """
    if not messages:
        raise ValueError("At least one chat message is required")

    normalized = []
    for message in messages:
        if isinstance(message, ChatMessage):
            role, content = message.role, message.content
        else:
            try:
                role = Role(message.get("role"))
            except ValueError:
                raise ValueError(f"Unsupported chat role: {message.get('role')!r}") from None
            content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValueError(f"Chat message for role {role.value!r} has no content")
        normalized.append({"role": role.value, "content": content})
    return normalized


class ModelGateway:
    """
    Client for a chat completion endpoint.

    One POST per invoke(); no retries.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout_seconds: float = 60.0,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        api_key: str | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Model runner address, with or without the /engines/v1 segment
            model: Model identifier sent with each request
            timeout_seconds: Request timeout in seconds
            temperature: Sampling temperature
            max_tokens: Completion token limit
            api_key: Optional bearer token
        """
        self.base_url = base_url
        self.model = model
        self.timeout = timeout_seconds
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

    @classmethod
    def from_config(cls, config: ModelConfig) -> "ModelGateway":
        return cls(
            base_url=config.base_url,
            model=config.model,
            timeout_seconds=config.timeout_seconds,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            api_key=config.get_api_key(),
        )

    def build_url(self, path: str = COMPLETION_PATH) -> str:
        """
        Build the completion URL from the configured base.

        A base that already carries /engines/v1 only gets the sub-path
        appended; a bare host gets the full versioned path.
        """
        if f"/{API_PATH}" in self.base_url:
            return _join(self.base_url, path)
        return _join(_join(self.base_url, API_PATH), path)

    def health_url(self) -> str:
        """URL of the model runner's health endpoint."""
        if f"/{API_PATH}" in self.base_url:
            return self.base_url.replace(f"/{API_PATH}", "/health").rstrip("/")
        return _join(self.base_url, "health")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def invoke(self, messages: Sequence[ChatMessage | Mapping[str, Any]]) -> Any:
        """
        Send chat turns to the model and return its raw reply.

        Args:
            messages: Ordered chat turns (SYSTEM/USER)

        Returns:
            Decoded JSON body, or the response text if the body is not JSON

        Raises:
            ValueError: If the messages are empty or malformed
            GatewayError: On any transport or non-2xx failure
        """
        payload = {
            "model": self.model,
            "messages": normalize_messages(messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }
        url = self.build_url()

        logger.info(f"Calling model {self.model} at {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.warning(f"Model request to {url} timed out: {e}")
            raise GatewayError(
                GatewayErrorKind.UNAVAILABLE,
                f"Model runner timed out after {self.timeout}s",
                attempted_url=url,
            ) from e
        except httpx.ConnectError as e:
            logger.warning(f"Cannot connect to model runner at {url}: {e}")
            raise GatewayError(
                GatewayErrorKind.UNAVAILABLE,
                "Cannot connect to model runner. Check that it is enabled and reachable.",
                attempted_url=url,
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"Model request to {url} failed: {e}")
            raise GatewayError(
                GatewayErrorKind.UNKNOWN,
                f"Model runner error: {e}",
                attempted_url=url,
            ) from e

        status = response.status_code
        if status == 404:
            raise GatewayError(
                GatewayErrorKind.ENDPOINT_NOT_FOUND,
                f"Model runner API endpoint not found. Attempted URL: {url}",
                attempted_url=url,
                status_code=status,
            )
        if status >= 500:
            body = response.text
            logger.warning(f"Model runner returned {status}: {body[:200]}")
            raise GatewayError(
                GatewayErrorKind.REMOTE_ERROR,
                f"Model runner internal error: {body or 'Unknown error'}",
                attempted_url=url,
                status_code=status,
                body=body,
            )
        if not 200 <= status < 300:
            raise GatewayError(
                GatewayErrorKind.UNKNOWN,
                f"Model runner error: unexpected status {status}",
                attempted_url=url,
                status_code=status,
                body=response.text,
            )

        logger.debug(f"Model reply received ({status})")
        try:
            return response.json()
        except ValueError:
            return response.text

    async def check_health(self) -> ModelHealth:
        """Check the model runner's health endpoint. Never raises."""
        url = self.health_url()
        async with httpx.AsyncClient(timeout=HEALTH_TIMEOUT_SECONDS) as client:
            try:
                response = await client.get(url)
                response.raise_for_status()
                try:
                    body = response.json()
                except ValueError:
                    body = response.text
                return ModelHealth(connected=True, health_url=url, response=body)
            except httpx.HTTPError as e:
                logger.warning(f"Model runner health check failed: {e}")
                return ModelHealth(connected=False, health_url=url, error=str(e))
