"""
Business recommendations from an OpenAI-compatible chat model (Groq by default).
"""
import datetime
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from openai import OpenAI, OpenAIError

import config
from core.errors import RecommendationError
from core.status import days_left
from models.member import Member
from models.payment import Payment
from models.snapshot import Snapshot
from services.finance_service import average_payment, total_revenue

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are an expert gym business consultant. Analyze this gym's data and provide 5-6 specific, actionable recommendations to grow the business.

Gym Data:
- Total Members: {total}
- Active Members: {active}
- Members Expiring Soon (7 days): {expiring}
- Total Revenue: ₹{revenue:.0f}
- Average Payment: ₹{average:.0f}
- Recent Context: {context}

Focus on:
1. Member retention strategies
2. Revenue optimization
3. Operational improvements
4. Marketing tactics
5. Customer engagement

Provide recommendations in a numbered list format with specific actions the gym owner can take immediately. Be concise and actionable."""


@dataclass(frozen=True)
class MemberSummary:
    total: int
    active: int  # expiry still ahead
    expiring_soon: int  # 1..7 days left


@dataclass(frozen=True)
class PaymentSummary:
    count: int
    total_revenue: float
    average_payment: float


@dataclass(frozen=True)
class RecommendationRequest:
    members: MemberSummary
    payments: PaymentSummary
    context: str = ""


def summarize_members(members: Iterable[Member], today: datetime.date) -> MemberSummary:
    members = list(members)
    remaining = [days_left(m.expiry_date, today) for m in members]
    return MemberSummary(
        total=len(members),
        active=sum(1 for d in remaining if d > 0),
        expiring_soon=sum(1 for d in remaining if 0 < d <= config.REMINDER_WINDOW_DAYS),
    )


def summarize_payments(payments: Iterable[Payment]) -> PaymentSummary:
    payments = list(payments)
    return PaymentSummary(len(payments), total_revenue(payments), average_payment(payments))


def build_request(snapshot: Snapshot, context: str = "") -> RecommendationRequest:
    return RecommendationRequest(
        members=summarize_members(snapshot.members, snapshot.as_of),
        payments=summarize_payments(snapshot.payments),
        context=context,
    )


def build_prompt(request: RecommendationRequest) -> str:
    return PROMPT_TEMPLATE.format(
        total=request.members.total,
        active=request.members.active,
        expiring=request.members.expiring_soon,
        revenue=request.payments.total_revenue,
        average=round(request.payments.average_payment),
        context=request.context or "No additional context",
    )


class RecommendationService:
    """
    Args:
        client (OpenAI, optional): Preconfigured client; built from config when omitted.
        model (str, optional): Defaults to config.AI_MODEL.
    """

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        if client is None:
            if not config.AI_API_KEY:
                raise RecommendationError("AI is not configured (AI_API_KEY missing).")
            client = OpenAI(api_key=config.AI_API_KEY, base_url=config.AI_BASE_URL)
        self.client = client
        self.model = model or config.AI_MODEL

    def recommend(self, request: RecommendationRequest) -> str:
        """
        Returns:
            str: Numbered recommendations as plain text.

        Raises:
            RecommendationError: If the model call fails or returns nothing.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": build_prompt(request)}],
            )
        except OpenAIError as e:
            logger.error("AI recommendations error: %s", e)
            raise RecommendationError(str(e))

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise RecommendationError("The model returned no recommendations.")
        return text.strip()
