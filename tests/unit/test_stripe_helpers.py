import stripe

from jobboard.billing.gateway import checkout_return_urls, to_plain
from jobboard.billing.payments import describe_stripe_error


def test_checkout_return_urls_carry_outcome_and_session_placeholder() -> None:
    success, cancel = checkout_return_urls("https://app.example.com/settings")
    assert success == "https://app.example.com/settings?success=true&session_id={CHECKOUT_SESSION_ID}"
    assert cancel == "https://app.example.com/settings?success=false"


def test_describe_stripe_error_maps_known_messages() -> None:
    assert describe_stripe_error(stripe.InvalidRequestError("No such price: 'price_x'", "price"))[1] == 400
    assert describe_stripe_error(stripe.AuthenticationError("Invalid API key provided"))[1] == 401
    coupon = stripe.InvalidRequestError("No such coupon: 'X'", "coupon")
    assert describe_stripe_error(coupon) == ("Invalid coupon code.", 400)
    message, status = describe_stripe_error(stripe.APIConnectionError("network down"))
    assert status == 502
    assert "network down" in message


def test_to_plain_accepts_dicts() -> None:
    assert to_plain({"id": "cus_1", "metadata": {"user_id": "u"}}) == {"id": "cus_1", "metadata": {"user_id": "u"}}
