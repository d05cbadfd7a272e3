import logging
from dataclasses import dataclass
from typing import Optional

import stripe

import config
from core.errors import PaymentLinkError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentLinkRequest:
    amount: float  # in major currency units (rupees)
    payer_name: str
    plan_name: str
    gym_id: str
    payer_email: str = ""


@dataclass(frozen=True)
class PaymentLinkResult:
    link_url: str
    link_id: str


class PaymentLinkService:
    """
    Creates hosted Stripe payment links for membership fees.

    Args:
        api_key (str, optional): Stripe secret key. Defaults to config.STRIPE_SECRET_KEY.
        currency (str, optional): Defaults to config.STRIPE_CURRENCY.
        app_url (str, optional): Base URL for the post-payment redirect.
    """

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None,
                 app_url: Optional[str] = None):
        self.api_key = api_key or config.STRIPE_SECRET_KEY
        self.currency = currency or config.STRIPE_CURRENCY
        self.app_url = (app_url or config.APP_URL).rstrip("/")

    def create_link(self, request: PaymentLinkRequest) -> PaymentLinkResult:
        """
        Creates a product, a one-off price and a payment link for it.

        Raises:
            ValidationError: If the amount or payer is missing.
            PaymentLinkError: If Stripe rejects any step.
        """
        if not request.payer_name or not request.payer_name.strip():
            raise ValidationError("Member name is required")
        if not request.amount or request.amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        if not self.api_key:
            raise PaymentLinkError("Stripe is not configured (STRIPE_SECRET_KEY missing).")

        try:
            # 1. Product named after the plan and the payer
            product = stripe.Product.create(
                api_key=self.api_key,
                name=f"{request.plan_name} - {request.payer_name}",
                description=f"Gym membership for {request.payer_name}",
            )

            # 2. Price in the smallest currency unit
            price = stripe.Price.create(
                api_key=self.api_key,
                product=product.id,
                unit_amount=int(round(request.amount * 100)),
                currency=self.currency,
            )

            # 3. Shareable link
            link = stripe.PaymentLink.create(
                api_key=self.api_key,
                line_items=[{"price": price.id, "quantity": 1}],
                after_completion={
                    "type": "redirect",
                    "redirect": {"url": f"{self.app_url}/payment-success"},
                },
                metadata={
                    "gym_id": request.gym_id,
                    "member_name": request.payer_name,
                    "plan_name": request.plan_name,
                },
            )
        except stripe.StripeError as e:
            logger.error("Stripe error: %s", e)
            raise PaymentLinkError(e.user_message or str(e))

        logger.info("Created payment link %s for %s", link.id, request.payer_name)
        return PaymentLinkResult(link_url=link.url, link_id=link.id)
