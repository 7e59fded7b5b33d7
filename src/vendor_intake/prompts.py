"""
Evaluation prompt construction.
"""

from dataclasses import dataclass

from .gateway import ChatMessage, Role
from .models import Submission


@dataclass(frozen=True)
class Criterion:
    """One weighted line of the scoring rubric."""

    label: str
    points: int


SCORING_RUBRIC: tuple[Criterion, ...] = (
    Criterion("Product innovation and quality", 25),
    Criterion("Market demand and competitiveness", 25),
    Criterion("Description clarity and completeness", 20),
    Criterion("Price appropriateness for market", 15),
    Criterion("Vendor credibility indicators", 15),
)

SYSTEM_PROMPT = (
    "You are a professional product evaluation AI. Always respond with valid JSON "
    "in the exact format requested. Do not include any text outside the JSON object."
)

REPLY_FORMAT = """{
  "score": <number between 0-100>,
  "decision": "APPROVED" or "REJECTED",
  "reasoning": "<detailed explanation of the evaluation>",
  "category_match": "<assessment of how well the product fits its category>",
  "market_potential": "High" or "Medium" or "Low"
}"""


def format_price(submission: Submission) -> str:
    return f"${submission.price:.2f}"


def build_evaluation_prompt(submission: Submission, threshold: int) -> str:
    """Build the user prompt for a submission. Same input, same text."""
    total = sum(c.points for c in SCORING_RUBRIC)
    criteria = "\n".join(f"- {c.label} ({c.points} points)" for c in SCORING_RUBRIC)

    return f"""You are an expert product evaluator for an AI-enhanced e-commerce catalog service.

Evaluate this product submission and respond with a JSON object in exactly this format:

{REPLY_FORMAT}

Product Details:
- Vendor: {submission.vendor_name or 'Not specified'}
- Product Name: {submission.product_name}
- Description: {submission.description}
- Price: {format_price(submission)}
- Category: {submission.category or 'Not specified'}

Evaluation Criteria ({total} points total):
{criteria}

Minimum passing score: {threshold}/100

Important: Respond ONLY with the JSON object, no additional text before or after."""


def build_evaluation_messages(submission: Submission, threshold: int) -> list[ChatMessage]:
    return [
        ChatMessage(Role.SYSTEM, SYSTEM_PROMPT),
        ChatMessage(Role.USER, build_evaluation_prompt(submission, threshold)),
    ]
