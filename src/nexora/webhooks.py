"""Payment webhook: signature verification and subscription updates.

Signatures follow the Standard Webhooks scheme and are checked with the
``standardwebhooks`` library, which also enforces its five minute timestamp
tolerance.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Mapping

from standardwebhooks.webhooks import Webhook, WebhookVerificationError

from .auth import SubscriptionRepository
from .config import Settings
from .models import NotFoundError, SignatureError, ValidationError

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"

ACTIVATION_EVENTS = {"membership.went_valid", "payment.succeeded"}
CANCELLATION_EVENTS = {"membership.went_invalid", "membership.cancelled"}

ANNUAL_DURATION = timedelta(days=365)
MONTHLY_DURATION = timedelta(days=30)


def build_webhook(secret: str) -> Webhook:
    """``whsec_`` secrets are base64 keys; anything else is used as raw bytes."""
    if secret.startswith(SECRET_PREFIX):
        return Webhook(secret)
    return Webhook(secret.encode("utf-8"))


def verify_signature(
    raw_body: bytes | str, headers: Mapping[str, str], secret: str | None
) -> None:
    """Raise ``SignatureError`` unless the payload carries a valid signature."""
    if not secret:
        raise SignatureError("Webhook secret not configured")

    try:
        build_webhook(secret).verify(raw_body, dict(headers))
    except json.JSONDecodeError as e:
        # signature matched, body is not JSON
        raise ValidationError("Invalid JSON payload") from e
    except (WebhookVerificationError, ValueError) as e:
        # ValueError covers undecodable bodies, malformed signature entries and bad keys
        logger.warning(f"Webhook signature rejected: {e}")
        raise SignatureError("Invalid webhook signature") from e


def parse_event(raw_body: bytes | str) -> dict[str, Any]:
    try:
        event = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Invalid JSON payload") from e
    if not isinstance(event, dict):
        raise ValidationError("Invalid JSON payload")
    return event


def _email(data: dict[str, Any]) -> str | None:
    user = data.get("user") if isinstance(data.get("user"), dict) else {}
    return user.get("email") or data.get("email")


def handle_event(
    event: dict[str, Any], subscriptions: SubscriptionRepository, settings: Settings
) -> dict[str, Any]:
    """Apply a verified webhook event; unknown events are acknowledged."""
    # legacy payloads use "action", standard ones "type"
    action = event.get("action") or event.get("type")
    data = event.get("data") or {}
    logger.info(f"Received payment webhook: {action}")

    if action in ACTIVATION_EVENTS:
        email = _email(data)
        if not email:
            raise ValidationError("No email found")

        plan = data.get("plan") or data.get("product") or {}
        plan_id = plan.get("id") if isinstance(plan, dict) else None
        annual = plan_id == settings.whop_annual_plan_id

        user_id = subscriptions.find_user_by_email(email)
        user = data.get("user") if isinstance(data.get("user"), dict) else {}
        subscriptions.activate(
            user_id,
            plan_type="annual" if annual else "monthly",
            duration=ANNUAL_DURATION if annual else MONTHLY_DURATION,
            whop_order_id=data.get("id"),
            whop_user_id=user.get("id") or data.get("user_id"),
        )
        return {"success": True, "message": "Subscription activated"}

    if action in CANCELLATION_EVENTS:
        email = _email(data)
        if email:
            try:
                subscriptions.cancel(subscriptions.find_user_by_email(email))
            except NotFoundError:
                logger.warning("Cancellation for unknown user ignored")
        return {"success": True}

    return {"success": True, "message": "Webhook received"}
