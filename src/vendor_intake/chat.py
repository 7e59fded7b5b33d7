"""
Catalog chatbot for vendor-intake.

Reads a shopper's message with a small rule table (price bounds, category
keywords, general questions), pulls the matching catalog rows and asks the
model to phrase an answer over them.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .catalog import SQLiteCatalogStore
from .config import IntakeConfig
from .gateway import ChatMessage, GatewayError, ModelGateway, Role
from .parser import extract_content

logger = logging.getLogger(__name__)

CHAT_MAX_TOKENS = 500

CATEGORY_KEYWORDS = ("electronics", "clothing", "books", "home", "sports", "toys")

FILLER_PATTERN = re.compile(
    r"\b(?:show me|find|search for|looking for|i want|i need|products?|items?)\b"
)

FALLBACK_REPLY = (
    "I'm having trouble connecting to our AI service. "
    "Let me help you with a basic search instead."
)

CHAT_SYSTEM_PROMPT = """You are a helpful product catalog assistant.
You help users find products from our catalog.

Current catalog data: {catalog_data}

Instructions:
- Be conversational and helpful
- If showing products, format them clearly with name, price, and brief description
- If no products match, suggest alternatives or ask for clarification
- Keep responses concise but informative
- Always end with asking if they need help with anything else"""

_AMOUNT = r"\$?(\d+(?:\.\d+)?)"


@dataclass
class ChatIntent:
    """What the chatbot understood from a message."""

    search_terms: str | None = None
    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    is_general_query: bool = False
    is_product_search: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchTerms": self.search_terms,
            "category": self.category,
            "minPrice": self.min_price,
            "maxPrice": self.max_price,
            "isGeneralQuery": self.is_general_query,
            "isProductSearch": self.is_product_search,
        }


def _set_range(intent: ChatIntent, match: re.Match) -> None:
    low, high = sorted((float(match.group(1)), float(match.group(2))))
    intent.min_price = low
    intent.max_price = high


def _set_max(intent: ChatIntent, match: re.Match) -> None:
    intent.max_price = float(match.group(1))


def _set_min(intent: ChatIntent, match: re.Match) -> None:
    intent.min_price = float(match.group(1))


def _set_category(intent: ChatIntent, match: re.Match) -> None:
    intent.category = match.group(1)


def _set_general(intent: ChatIntent, match: re.Match) -> None:
    intent.is_general_query = True


def _set_product_search(intent: ChatIntent, match: re.Match) -> None:
    intent.is_product_search = True


@dataclass(frozen=True)
class IntentRule:
    """A pattern and the filter it sets when it matches."""

    name: str
    pattern: re.Pattern
    apply: Callable[[ChatIntent, re.Match], None]
    consumes: bool = True
    group: str | None = None


# Rules sharing a group are exclusive: the first match wins
INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(
        "price_range",
        re.compile(rf"(?:between\s+)?{_AMOUNT}\s*(?:to|-|and)\s*{_AMOUNT}"),
        _set_range,
        group="price",
    ),
    IntentRule(
        "price_under",
        re.compile(rf"\b(?:under|below|less than|cheaper than)\s*{_AMOUNT}"),
        _set_max,
        group="price",
    ),
    IntentRule(
        "price_over",
        re.compile(rf"\b(?:over|above|more than)\s*{_AMOUNT}"),
        _set_min,
        group="price",
    ),
    IntentRule(
        "category",
        re.compile(rf"\b({'|'.join(CATEGORY_KEYWORDS)})\b"),
        _set_category,
    ),
    IntentRule(
        "general_query",
        re.compile(r"\b(?:how many|what categories)\b"),
        _set_general,
        consumes=False,
    ),
    IntentRule(
        "product_search",
        re.compile(r"\b(?:products?|show|find)\b"),
        _set_product_search,
        consumes=False,
    ),
)


def parse_intent(message: str) -> ChatIntent:
    """Apply INTENT_RULES to a message."""
    text = message.lower()
    intent = ChatIntent()
    remaining = text
    matched_groups: set[str] = set()

    for rule in INTENT_RULES:
        if rule.group and rule.group in matched_groups:
            continue
        match = rule.pattern.search(text)
        if not match:
            continue
        rule.apply(intent, match)
        if rule.group:
            matched_groups.add(rule.group)
        if rule.consumes:
            remaining = remaining.replace(match.group(0), " ")

    remaining = FILLER_PATTERN.sub(" ", remaining)
    remaining = re.sub(r"\$?\d+(?:\.\d+)?", " ", remaining)
    remaining = re.sub(r"[^\w\s'-]", " ", remaining)
    terms = " ".join(remaining.split())
    intent.search_terms = terms or None
    return intent


@dataclass
class ChatReply:
    """The chatbot's answer plus the data it was based on."""

    response: str
    catalog_data: dict[str, Any] = field(default_factory=dict)
    intent: ChatIntent = field(default_factory=ChatIntent)

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "catalogData": self.catalog_data,
            "intent": self.intent.to_dict(),
        }


class CatalogChatbot:
    """Answer catalog questions from the local product table."""

    def __init__(self, store: SQLiteCatalogStore, gateway: ModelGateway):
        self.store = store
        self.gateway = gateway

    @classmethod
    def from_config(cls, config: IntakeConfig) -> "CatalogChatbot":
        gateway = ModelGateway.from_config(config.model)
        gateway.max_tokens = CHAT_MAX_TOKENS
        return cls(SQLiteCatalogStore(config.db_path), gateway)

    def parse_intent(self, message: str) -> ChatIntent:
        return parse_intent(message)

    async def gather_catalog_data(self, intent: ChatIntent, message: str) -> dict[str, Any]:
        """Fetch stats for general questions, matching products otherwise."""
        if intent.is_general_query:
            return {
                "stats": self.store.stats(),
                "categories": self.store.categories(),
            }
        if intent.is_product_search or intent.search_terms:
            products = self.store.search(
                intent.search_terms,
                category=intent.category,
                min_price=intent.min_price,
                max_price=intent.max_price,
            )
        else:
            products = self.store.search(message)
        return {"products": products}

    async def generate_response(self, message: str, catalog_data: dict[str, Any]) -> str:
        system_prompt = CHAT_SYSTEM_PROMPT.format(
            catalog_data=json.dumps(catalog_data, indent=2, default=str)
        )
        try:
            reply = await self.gateway.invoke(
                [
                    ChatMessage(Role.SYSTEM, system_prompt),
                    ChatMessage(Role.USER, message),
                ]
            )
        except GatewayError as e:
            logger.warning(f"Chat model unavailable: {e.message}")
            return FALLBACK_REPLY

        content = extract_content(reply)
        if not content:
            logger.warning("Chat model returned no content")
            return FALLBACK_REPLY
        return content

    async def respond(self, message: str) -> ChatReply:
        """
        Answer a shopper's message.

        Raises:
            ValueError: If the message is empty
        """
        if not message or not message.strip():
            raise ValueError("Message is required")

        intent = self.parse_intent(message)
        logger.debug(f"Chat intent: {intent}")
        catalog_data = await self.gather_catalog_data(intent, message)
        response = await self.generate_response(message, catalog_data)
        return ChatReply(response=response, catalog_data=catalog_data, intent=intent)
