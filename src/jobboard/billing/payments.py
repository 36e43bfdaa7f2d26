from __future__ import annotations

import logging
from typing import Any

import stripe
from sqlalchemy.orm import Session

from jobboard.billing.gateway import StripeGateway
from jobboard.billing.retry import retry_with_backoff
from jobboard.config import Settings, get_settings
from jobboard.core.results import Result
from jobboard.db.repositories import Repository

logger = logging.getLogger(__name__)


def describe_stripe_error(exc: Exception) -> tuple[str, int]:
    message = str(exc)
    if "No such price" in message:
        return (
            "Invalid Stripe price ID. Make sure you are using the correct test/live price ID "
            "matching your API key mode.",
            400,
        )
    if "API key" in message:
        return "Invalid Stripe API key. Check if your API key is valid and matches the expected mode.", 401
    if "No such coupon" in message:
        return "Invalid coupon code.", 400
    return message or "Stripe request failed", 502


class BillingService:
    def __init__(
        self,
        session: Session,
        gateway: StripeGateway,
        *,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.gateway = gateway

    def start_checkout(self, *, user_id: str, return_url: str) -> Result[dict[str, Any]]:
        if not self.settings.stripe_enabled:
            return Result.failure("Stripe secret key not configured", 500)

        profile = self.repo.get_profile(user_id)
        if profile is None:
            return Result.failure("User not found", 404)

        logger.info("Creating checkout session for user %s", user_id)
        try:
            customer = self.gateway.ensure_customer(user_id=user_id, email=profile.email)
            session = self.gateway.create_checkout_session(
                user_id=user_id,
                customer_id=customer["id"],
                return_url=return_url,
            )
        except stripe.StripeError as exc:
            logger.error("Error creating checkout session for user %s: %s", user_id, exc)
            message, status_code = describe_stripe_error(exc)
            return Result.failure(message, status_code)

        return Result.success({"sessionId": session.get("id"), "url": session.get("url")})

    def start_subscription_checkout(
        self,
        *,
        user_id: str,
        user_email: str,
        return_url: str,
        coupon_id: str | None = None,
    ) -> Result[dict[str, Any]]:
        if not user_id:
            return Result.failure("user_id is required", 400)
        if not return_url:
            return Result.failure("return_url is required", 400)

        price_id = self.settings.stripe_employer_price_id
        if not price_id:
            return Result.failure("STRIPE_EMPLOYER_PRICE_ID is not configured", 500)

        profile = self.repo.get_profile(user_id)
        if profile is None:
            return Result.failure("User not found", 404)

        logger.info("Creating subscription checkout for user %s price %s", user_id, price_id)
        try:
            customer = self.gateway.ensure_customer(user_id=user_id, email=profile.email or user_email)
            session = self.gateway.create_subscription_checkout(
                user_id=user_id,
                customer_id=customer["id"],
                price_id=price_id,
                return_url=return_url,
                coupon_id=coupon_id,
            )
        except stripe.StripeError as exc:
            logger.error("Error in Stripe checkout for user %s: %s", user_id, exc)
            message, status_code = describe_stripe_error(exc)
            return Result.failure(message, status_code)

        logger.info("Checkout session %s created", session.get("id"))
        return Result.success({"url": session.get("url")})

    def open_customer_portal(self, *, user_id: str, return_url: str) -> Result[dict[str, Any]]:
        if not user_id:
            return Result.failure("user_id is required", 400)
        if not return_url:
            return Result.failure("return_url is required", 400)

        profile = self.repo.get_profile(user_id)
        if profile is None or not profile.email:
            return Result.failure(
                "No subscription found for this user. You need to subscribe first before managing subscriptions.",
                404,
            )

        try:
            customer = self.gateway.find_customer_by_email(profile.email, user_id=user_id)
            if customer is None:
                return Result.failure(
                    "No subscription found for this user. You need to subscribe first before managing "
                    "subscriptions.",
                    404,
                )
            session = self.gateway.create_portal_session(customer_id=customer["id"], return_url=return_url)
        except stripe.StripeError as exc:
            logger.error("Error in customer portal for user %s: %s", user_id, exc)
            message, status_code = describe_stripe_error(exc)
            return Result.failure(message, status_code)

        return Result.success({"url": session.get("url")})

    def create_payment_intent(self, *, user_id: str, idempotency_key: str | None = None) -> Result[dict[str, Any]]:
        if not user_id:
            return Result.failure("user_id is required", 400)

        price_id = self.settings.stripe_employer_price_id
        if not price_id:
            return Result.failure("STRIPE_EMPLOYER_PRICE_ID is not configured", 500)

        profile = self.repo.get_profile(user_id)
        if profile is None or not profile.email:
            return Result.failure("Failed to get user email: User not found", 400)

        attempts = self.settings.payment_retry_attempts
        initial_delay = self.settings.payment_retry_initial_delay_sec
        try:
            price = self.gateway.retrieve_price(price_id)
            if not price.get("unit_amount"):
                return Result.failure("Price does not have a unit amount", 400)

            customer = retry_with_backoff(
                lambda: self.gateway.ensure_customer(user_id=user_id, email=profile.email),
                attempts=attempts,
                initial_delay=initial_delay,
            )
            subscription = retry_with_backoff(
                lambda: self.gateway.create_incomplete_subscription(
                    customer_id=customer["id"],
                    price_id=price_id,
                    user_id=user_id,
                    idempotency_key=idempotency_key,
                ),
                attempts=attempts,
                initial_delay=initial_delay,
            )
        except stripe.StripeError as exc:
            logger.error("Error creating payment intent for user %s: %s", user_id, exc)
            return Result.failure(str(exc) or "Stripe request failed", 400)

        invoice = subscription.get("latest_invoice")
        if not isinstance(invoice, dict):
            return Result.failure("Invoice object not expanded properly", 400)
        payment_intent = invoice.get("payment_intent")
        if not isinstance(payment_intent, dict):
            return Result.failure("Payment intent not expanded properly", 400)

        logger.info("Created subscription %s and payment intent %s", subscription.get("id"), payment_intent.get("id"))
        return Result.success(
            {"clientSecret": payment_intent.get("client_secret"), "subscriptionId": subscription.get("id")}
        )
