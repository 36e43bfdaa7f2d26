from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jobboard.api.deps import get_current_user_id, get_db, get_stripe_gateway
from jobboard.api.schemas import (
    CheckoutConfirmRequest,
    CheckoutSessionRequest,
    CustomerPortalRequest,
    PaymentIntentRequest,
    SubscriptionCheckoutRequest,
)
from jobboard.billing.gateway import StripeGateway, WebhookVerificationError
from jobboard.billing.payments import BillingService
from jobboard.config import get_settings
from jobboard.core.results import Result
from jobboard.core.subscriptions import SubscriptionReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["billing"])


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _respond(result: Result) -> JSONResponse:
    if not result.ok:
        return _error(result.error or "Request failed", result.status_code)
    return JSONResponse(result.value)


def _forbidden_unless_caller(caller_id: str, user_id: str) -> JSONResponse | None:
    if user_id and user_id != caller_id:
        return _error("Cannot act on behalf of another user", 403)
    return None


@router.post("/create-checkout-session")
def create_checkout_session(
    payload: CheckoutSessionRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> JSONResponse:
    denied = _forbidden_unless_caller(caller_id, payload.user_id)
    if denied is not None:
        return denied
    service = BillingService(db, gateway)
    return _respond(service.start_checkout(user_id=payload.user_id, return_url=payload.return_url))


@router.post("/stripe-subscription")
def stripe_subscription(
    payload: SubscriptionCheckoutRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> JSONResponse:
    denied = _forbidden_unless_caller(caller_id, payload.user_id)
    if denied is not None:
        return denied
    result = BillingService(db, gateway).start_subscription_checkout(
        user_id=payload.user_id,
        user_email=payload.user_email,
        return_url=payload.return_url,
        coupon_id=payload.coupon_id,
    )
    return _respond(result)


@router.post("/stripe-subscription/customer-portal")
def customer_portal(
    payload: CustomerPortalRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> JSONResponse:
    user_id = payload.user_id or caller_id
    denied = _forbidden_unless_caller(caller_id, user_id)
    if denied is not None:
        return denied
    service = BillingService(db, gateway)
    return _respond(service.open_customer_portal(user_id=user_id, return_url=payload.return_url))


@router.post("/stripe-subscription/confirm")
def confirm_checkout(
    payload: CheckoutConfirmRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> JSONResponse:
    result = SubscriptionReconciler(db, gateway).confirm_checkout_session(payload.session_id, caller_id)
    if not result.ok:
        return _error(result.error or "Request failed", result.status_code)
    return JSONResponse(result.unwrap().as_dict())


@router.post("/create-payment-intent")
def create_payment_intent(
    payload: PaymentIntentRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> JSONResponse:
    user_id = payload.user_id or caller_id
    denied = _forbidden_unless_caller(caller_id, user_id)
    if denied is not None:
        return denied
    service = BillingService(db, gateway)
    return _respond(service.create_payment_intent(user_id=user_id, idempotency_key=payload.idempotency_key))


def _process_webhook(body: bytes, signature: str, db: Session, gateway: StripeGateway) -> JSONResponse:
    try:
        event = gateway.verify_webhook(body, signature)
    except WebhookVerificationError as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        return _error(f"Webhook Error: {exc}", 400)

    result = SubscriptionReconciler(db, gateway).handle_event(event)
    if not result.ok:
        return _error(result.error or "Failed to process event", result.status_code)

    outcome = result.unwrap()
    return JSONResponse({"received": True, "applied": outcome.applied, "reason": outcome.reason})


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> JSONResponse:
    if not get_settings().stripe_webhook_secret:
        logger.error("Stripe webhook secret is not configured")
        return _error("Webhook secret not configured", 500)
    if not stripe_signature:
        return _error("Missing stripe-signature header", 400)

    # Verification and reconciliation do blocking database and Stripe I/O.
    body = await request.body()
    return await run_in_threadpool(_process_webhook, body, stripe_signature, db, gateway)
