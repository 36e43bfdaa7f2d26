from __future__ import annotations

import logging
from typing import Any

import stripe

from jobboard.config import Settings
from jobboard.types import StripeEvent

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2023-10-16"


class WebhookVerificationError(Exception):
    pass


def to_plain(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj
    for attr in ("to_dict", "to_dict_recursive"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            return converter()
    return dict(obj)


def checkout_return_urls(return_url: str) -> tuple[str, str]:
    separator = "&" if "?" in return_url else "?"
    success_url = f"{return_url}{separator}success=true&session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = f"{return_url}{separator}success=false"
    return success_url, cancel_url


class StripeGateway:
    """Thin wrapper over the ``stripe`` library bound to one secret key.

    Every customer created here carries ``metadata.user_id`` and every
    checkout session carries the user id in ``client_reference_id``,
    ``metadata`` and ``subscription_data.metadata``, so webhook handling can
    link events back to a profile without guessing from email addresses.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._options = {"api_key": settings.stripe_secret_key, "stripe_version": STRIPE_API_VERSION}

    def ensure_customer(self, *, user_id: str, email: str) -> dict[str, Any]:
        """Return the customer linked to ``user_id``, creating one if needed.

        A customer found by email is reused only when it is already linked to
        this user or has no ``metadata.user_id`` yet. A customer linked to
        another user is never relinked.
        """
        if email:
            existing = self.find_customer_by_email(email, user_id=user_id)
            if existing:
                if not (existing.get("metadata") or {}).get("user_id"):
                    existing = self.set_customer_user_id(existing["id"], user_id)
                return existing

        customer = stripe.Customer.create(email=email or None, metadata={"user_id": user_id}, **self._options)
        logger.info("Created Stripe customer %s for user %s", customer["id"], user_id)
        return to_plain(customer)

    def find_customer_by_email(self, email: str, *, user_id: str | None = None) -> dict[str, Any] | None:
        customers = stripe.Customer.list(email=email, limit=10, **self._options)
        data = [to_plain(customer) for customer in customers["data"]]
        if user_id is None:
            return data[0] if data else None

        unlinked = None
        for customer in data:
            owner = (customer.get("metadata") or {}).get("user_id")
            if owner == user_id:
                return customer
            if not owner and unlinked is None:
                unlinked = customer
        return unlinked

    def retrieve_customer(self, customer_id: str) -> dict[str, Any]:
        return to_plain(stripe.Customer.retrieve(customer_id, **self._options))

    def set_customer_user_id(self, customer_id: str, user_id: str) -> dict[str, Any]:
        customer = stripe.Customer.modify(customer_id, metadata={"user_id": user_id}, **self._options)
        logger.info("Linked Stripe customer %s to user %s", customer_id, user_id)
        return to_plain(customer)

    def create_checkout_session(self, *, user_id: str, customer_id: str, return_url: str) -> dict[str, Any]:
        success_url, cancel_url = checkout_return_urls(return_url)
        session = stripe.checkout.Session.create(
            mode="subscription",
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": self.settings.stripe_checkout_currency,
                        "product_data": {
                            "name": self.settings.stripe_checkout_product_name,
                            "description": "Monthly subscription for employer account access",
                        },
                        "unit_amount": self.settings.stripe_checkout_unit_amount,
                        "recurring": {"interval": "month"},
                    },
                    "quantity": 1,
                }
            ],
            success_url=success_url,
            cancel_url=cancel_url,
            customer=customer_id,
            client_reference_id=user_id,
            metadata={"user_id": user_id},
            subscription_data={"metadata": {"user_id": user_id}},
            **self._options,
        )
        return to_plain(session)

    def create_subscription_checkout(
        self,
        *,
        user_id: str,
        customer_id: str,
        price_id: str,
        return_url: str,
        coupon_id: str | None = None,
    ) -> dict[str, Any]:
        success_url, cancel_url = checkout_return_urls(return_url)
        params: dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer": customer_id,
            "client_reference_id": user_id,
            "metadata": {"user_id": user_id},
            "subscription_data": {"metadata": {"user_id": user_id}},
        }
        if coupon_id:
            params["discounts"] = [{"coupon": coupon_id}]
        return to_plain(stripe.checkout.Session.create(**params, **self._options))

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        return to_plain(stripe.checkout.Session.retrieve(session_id, **self._options))

    def create_portal_session(self, *, customer_id: str, return_url: str) -> dict[str, Any]:
        session = stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url, **self._options)
        return to_plain(session)

    def retrieve_price(self, price_id: str) -> dict[str, Any]:
        return to_plain(stripe.Price.retrieve(price_id, **self._options))

    def create_incomplete_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        user_id: str,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "payment_behavior": "default_incomplete",
            "payment_settings": {"save_default_payment_method": "on_subscription"},
            "expand": ["latest_invoice.payment_intent"],
            "metadata": {"user_id": user_id},
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        return to_plain(stripe.Subscription.create(**params, **self._options))

    def verify_webhook(self, payload: bytes, signature: str) -> StripeEvent:
        secret = self.settings.stripe_webhook_secret
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                secret,
                tolerance=self.settings.stripe_webhook_tolerance_sec,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            raise WebhookVerificationError(str(exc)) from exc

        try:
            return StripeEvent.model_validate_json(payload)
        except ValueError as exc:
            raise WebhookVerificationError(f"invalid event payload: {exc}") from exc
