"""Reconciles profile ``role`` / ``subscription_status`` with Stripe.

Three channels can touch the same two profile fields: the checkout session
the client starts, the webhook events Stripe delivers on its own schedule, and
the client returning from hosted checkout. Only the webhook handler and the
checkout confirmation below write the fields; the client only re-reads them.

Every subscription-bearing event is a full overwrite of the fields. There is
no comparison of event timestamps or ids, so a stale ``canceled`` event that
arrives after an ``active`` one demotes the profile again. Redelivered events
reapply the same values.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobboard.billing.gateway import StripeGateway
from jobboard.config import Settings, get_settings
from jobboard.core.results import Result
from jobboard.db.repositories import Repository
from jobboard.types import SUBSCRIPTION_EVENT_TYPES, StripeEvent

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"
UUID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)


def role_for_status(status: str | None) -> str:
    return "employer" if status == ACTIVE_STATUS else "applicant"


@dataclass(slots=True)
class ReconcileOutcome:
    event_type: str
    user_id: str | None = None
    subscription_status: str | None = None
    role: str | None = None
    applied: bool = False
    reason: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "user_id": self.user_id,
            "subscription_status": self.subscription_status,
            "role": self.role,
            "applied": self.applied,
            "reason": self.reason,
        }


class SubscriptionReconciler:
    def __init__(
        self,
        session: Session,
        gateway: StripeGateway,
        *,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.gateway = gateway

    def handle_event(self, event: StripeEvent) -> Result[ReconcileOutcome]:
        logger.info("Processing Stripe event %s (%s)", event.id or "-", event.type)
        if event.type not in SUBSCRIPTION_EVENT_TYPES:
            return Result.success(ReconcileOutcome(event_type=event.type, reason="ignored"))
        if event.type == "checkout.session.completed":
            return self._handle_checkout_completed(event.type, event.payload)
        return self._handle_subscription_change(event.type, event.payload)

    def confirm_checkout_session(self, session_id: str, user_id: str) -> Result[ReconcileOutcome]:
        try:
            checkout = self.gateway.retrieve_checkout_session(session_id)
        except stripe.InvalidRequestError as exc:
            logger.warning("Unknown checkout session %s: %s", session_id, exc)
            return Result.failure("Checkout session not found", 404)
        except stripe.StripeError as exc:
            logger.error("Failed to retrieve checkout session %s: %s", session_id, exc)
            return Result.failure("Unable to verify checkout session", 502)

        owner = (checkout.get("metadata") or {}).get("user_id") or checkout.get("client_reference_id")
        if owner != user_id:
            return Result.failure("Checkout session does not belong to this user", 403)
        paid = checkout.get("payment_status") in {"paid", "no_payment_required"}
        if checkout.get("status") != "complete" or not paid:
            return Result.success(
                ReconcileOutcome(event_type="checkout.session.confirm", user_id=user_id, reason="not_complete")
            )
        return self._handle_checkout_completed("checkout.session.confirm", checkout)

    def apply(self, user_id: str, status: str | None, subscription_id: str | None) -> Result[ReconcileOutcome]:
        role = role_for_status(status)
        try:
            self.repo.set_subscription_state(
                user_id,
                role=role,
                subscription_status=status,
                subscription_id=subscription_id,
            )
        except ValueError:
            logger.warning("Dropping subscription update for unknown profile %s", user_id)
            return Result.success(
                ReconcileOutcome(event_type="", user_id=user_id, subscription_status=status, reason="unknown_profile")
            )
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Failed to update subscription state for user %s: %s", user_id, exc)
            return Result.failure("Failed to update user profile", 500)

        logger.info("User %s subscription_status=%s role=%s", user_id, status, role)
        return Result.success(
            ReconcileOutcome(
                event_type="",
                user_id=user_id,
                subscription_status=status,
                role=role,
                applied=True,
            )
        )

    def _handle_checkout_completed(self, event_type: str, checkout: dict[str, Any]) -> Result[ReconcileOutcome]:
        if checkout.get("mode") != "subscription":
            return Result.success(ReconcileOutcome(event_type=event_type, reason="not_subscription"))

        user_id = (checkout.get("metadata") or {}).get("user_id") or checkout.get("client_reference_id")
        if not user_id:
            logger.error("Checkout session %s has no user reference; dropping", checkout.get("id"))
            return Result.success(ReconcileOutcome(event_type=event_type, reason="unlinked"))

        result = self.apply(user_id, ACTIVE_STATUS, _object_id(checkout.get("subscription")))
        if not result.ok:
            return result

        outcome = result.unwrap()
        customer_id = _object_id(checkout.get("customer"))
        if customer_id and outcome.applied:
            self._backfill_customer_metadata(customer_id, user_id)

        outcome.event_type = event_type
        return Result.success(outcome)

    def _handle_subscription_change(self, event_type: str, subscription: dict[str, Any]) -> Result[ReconcileOutcome]:
        status = subscription.get("status")
        if not status and event_type == "customer.subscription.deleted":
            status = "canceled"

        user_id = self.resolve_user_id(subscription)
        if not user_id:
            logger.error(
                "Unable to link subscription %s (customer %s) to a user; dropping %s",
                subscription.get("id"),
                _object_id(subscription.get("customer")),
                event_type,
            )
            return Result.success(
                ReconcileOutcome(event_type=event_type, subscription_status=status, reason="unlinked")
            )

        result = self.apply(user_id, status, subscription.get("id"))
        if result.ok and result.value is not None:
            result.value.event_type = event_type
        return result

    def resolve_user_id(self, subscription: dict[str, Any]) -> str | None:
        metadata_user = (subscription.get("metadata") or {}).get("user_id")
        if metadata_user:
            return metadata_user

        customer: dict[str, Any] = {}
        customer_id = _object_id(subscription.get("customer"))
        if customer_id:
            try:
                customer = self.gateway.retrieve_customer(customer_id)
            except stripe.StripeError as exc:
                logger.warning("Failed to retrieve Stripe customer %s: %s", customer_id, exc)

        metadata_user = (customer.get("metadata") or {}).get("user_id")
        if metadata_user:
            return metadata_user

        subscription_id = subscription.get("id")
        if subscription_id:
            profile = self.repo.find_profile_by_subscription(subscription_id)
            if profile is not None:
                return profile.id

        if not self.settings.stripe_allow_email_linkage:
            return None

        user_id = self._user_id_from_email(customer.get("email") or "")
        if user_id and customer_id:
            self._backfill_customer_metadata(customer_id, user_id)
        return user_id

    def _user_id_from_email(self, email: str) -> str | None:
        local_part = email.split("@", 1)[0]
        if not local_part:
            return None

        # Legacy fallback: customers created before metadata was mandatory
        # used the profile id as the email local part.
        if self.repo.get_profile(local_part) is not None:
            logger.warning("Linked Stripe customer %s by email local part", email)
            return local_part

        match = UUID_PATTERN.search(local_part)
        if match and self.repo.get_profile(match.group(0).lower()) is not None:
            logger.warning("Linked Stripe customer %s by UUID embedded in email", email)
            return match.group(0).lower()
        return None

    def _backfill_customer_metadata(self, customer_id: str, user_id: str) -> None:
        try:
            customer = self.gateway.retrieve_customer(customer_id)
            if (customer.get("metadata") or {}).get("user_id"):
                return
            self.gateway.set_customer_user_id(customer_id, user_id)
        except stripe.StripeError as exc:
            logger.error("Failed to update metadata on Stripe customer %s: %s", customer_id, exc)


def _object_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("id")
    return str(value)
