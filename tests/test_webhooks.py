"""Tests for webhook signatures, subscription updates and tokens."""

import base64
import time
from datetime import timedelta

import pytest

from fixtures.webhooks import signed_headers
from nexora.auth import SubscriptionRepository, create_access_token, decode_token
from nexora.config import Settings
from nexora.models import AuthorizationError, NotFoundError, SignatureError, ValidationError, utcnow
from nexora.webhooks import handle_event, parse_event, verify_signature

SECRET = "whsec_" + base64.b64encode(b"super-secret-key").decode()


@pytest.fixture
def subscriptions(records):
    repo = SubscriptionRepository(records)
    repo.save_profile("user-1", "Reader@Example.com")
    return repo


@pytest.fixture
def settings():
    return Settings(whop_annual_plan_id="plan_annual", database_url="memory://")


class TestVerifySignature:
    """Test Standard Webhooks signature checks."""

    def test_valid_signature(self):
        body = '{"type": "payment.succeeded"}'
        verify_signature(body.encode(), signed_headers(body, SECRET), SECRET)

    def test_header_names_are_case_insensitive(self):
        body = "{}"
        headers = {k.title(): v for k, v in signed_headers(body, SECRET).items()}
        verify_signature(body, headers, SECRET)

    def test_one_of_several_signatures_may_match(self):
        body = "{}"
        headers = signed_headers(body, SECRET)
        headers["webhook-signature"] = "v1,bm90LWl0 " + headers["webhook-signature"]
        verify_signature(body, headers, SECRET)

    def test_tampered_body_rejected(self):
        headers = signed_headers('{"amount": 1}', SECRET)
        with pytest.raises(SignatureError):
            verify_signature(b'{"amount": 1000}', headers, SECRET)

    def test_wrong_secret_rejected(self):
        body = "{}"
        other = "whsec_" + base64.b64encode(b"other").decode()
        with pytest.raises(SignatureError):
            verify_signature(body, signed_headers(body, other), SECRET)

    def test_missing_headers_rejected(self):
        with pytest.raises(SignatureError):
            verify_signature(b"{}", {}, SECRET)

    def test_stale_timestamp_rejected(self):
        body = "{}"
        headers = signed_headers(body, SECRET, timestamp=int(time.time()) - 600)
        with pytest.raises(SignatureError):
            verify_signature(body, headers, SECRET)

    def test_unset_secret_rejects(self):
        body = "{}"
        with pytest.raises(SignatureError, match="not configured"):
            verify_signature(body, signed_headers(body, SECRET), None)

    def test_plain_secret_is_used_as_bytes(self):
        body = "{}"
        verify_signature(body, signed_headers(body, "plain"), "plain")

    def test_non_utf8_body_is_a_signature_failure(self):
        headers = signed_headers("{}", SECRET)
        with pytest.raises(SignatureError):
            verify_signature(b"\xff\xfe{}", headers, SECRET)

    def test_malformed_signature_entry_rejected(self):
        headers = signed_headers("{}", SECRET)
        headers["webhook-signature"] = "garbage"
        with pytest.raises(SignatureError):
            verify_signature(b"{}", headers, SECRET)

    def test_signed_body_that_is_not_json(self):
        body = "not json"
        with pytest.raises(ValidationError, match="Invalid JSON"):
            verify_signature(body, signed_headers(body, SECRET), SECRET)


def test_parse_event_rejects_invalid_json():
    with pytest.raises(ValidationError):
        parse_event(b"not json")


def test_activation_creates_monthly_subscription(subscriptions, settings):
    event = {"type": "payment.succeeded", "data": {"id": "ord_1", "user": {"email": "reader@example.com", "id": "wu_1"}}}

    result = handle_event(event, subscriptions, settings)

    subscription = subscriptions.get("user-1")
    assert result["success"] is True
    assert subscription.plan_type == "monthly"
    assert subscription.whop_order_id == "ord_1"
    assert subscription.whop_user_id == "wu_1"
    assert subscription.expires_at - subscription.started_at == timedelta(days=30)
    assert subscriptions.has_active("user-1")


def test_annual_plan_runs_a_year(subscriptions, settings):
    event = {"action": "membership.went_valid", "data": {"email": "reader@example.com", "plan": {"id": "plan_annual"}}}

    handle_event(event, subscriptions, settings)

    subscription = subscriptions.get("user-1")
    assert subscription.plan_type == "annual"
    assert subscription.expires_at - subscription.started_at == timedelta(days=365)


def test_reactivation_upserts_single_row(subscriptions, settings, records):
    event = {"type": "payment.succeeded", "data": {"email": "reader@example.com"}}
    handle_event(event, subscriptions, settings)
    handle_event(event, subscriptions, settings)

    assert len(records.select("subscriptions")) == 1


def test_activation_without_email_is_rejected(subscriptions, settings):
    with pytest.raises(ValidationError, match="No email"):
        handle_event({"type": "payment.succeeded", "data": {}}, subscriptions, settings)


def test_activation_for_unknown_user(subscriptions, settings):
    event = {"type": "payment.succeeded", "data": {"email": "stranger@example.com"}}
    with pytest.raises(NotFoundError):
        handle_event(event, subscriptions, settings)


def test_cancellation_revokes_access(subscriptions, settings):
    handle_event({"type": "payment.succeeded", "data": {"email": "reader@example.com"}}, subscriptions, settings)

    result = handle_event(
        {"type": "membership.cancelled", "data": {"user": {"email": "reader@example.com"}}},
        subscriptions,
        settings,
    )

    assert result == {"success": True}
    assert subscriptions.get("user-1").status == "cancelled"
    assert not subscriptions.has_active("user-1")


def test_unknown_event_acknowledged(subscriptions, settings):
    assert handle_event({"type": "refund.created", "data": {}}, subscriptions, settings)["success"]


def test_expired_subscription_is_inactive(subscriptions):
    started = utcnow() - timedelta(days=40)
    subscriptions.activate("user-1", "monthly", timedelta(days=30), now=started)

    assert not subscriptions.has_active("user-1")
    assert subscriptions.has_active("user-1", now=started + timedelta(days=1))


class TestTokens:
    """Test JWT helpers."""

    def test_round_trip(self):
        token = create_access_token("user-1", "secret")
        assert decode_token(token, "secret") == "user-1"

    def test_wrong_secret(self):
        token = create_access_token("user-1", "secret")
        with pytest.raises(AuthorizationError, match="Invalid token"):
            decode_token(token, "other")

    def test_expired_token(self):
        token = create_access_token("user-1", "secret", expires_in=timedelta(seconds=-10))
        with pytest.raises(AuthorizationError):
            decode_token(token, "secret")

    def test_missing_token(self):
        with pytest.raises(AuthorizationError, match="Unauthorized"):
            decode_token(None, "secret")

    def test_token_without_subject(self):
        from jose import jwt

        token = jwt.encode({"role": "anon"}, "secret", algorithm="HS256")
        with pytest.raises(AuthorizationError):
            decode_token(token, "secret")
