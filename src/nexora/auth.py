"""Bearer token authentication and the subscription paywall."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from .config import Settings
from .models import AuthorizationError, NotFoundError, Profile, Subscription, utcnow
from .storage import RecordStore, new_id

logger = logging.getLogger(__name__)

SUBSCRIPTIONS = "subscriptions"
PROFILES = "profiles"

# Tokens are issued by the identity provider; auto_error is off so a missing
# header maps onto our own 401 body.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/token", auto_error=False)


def create_access_token(
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    expires_in: timedelta | None = None,
    **claims: Any,
) -> str:
    """Create a signed JWT whose ``sub`` is ``user_id``."""
    payload: dict[str, Any] = {"sub": user_id, **claims}
    if expires_in is not None:
        payload["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str | None, secret: str, algorithm: str = "HS256") -> str:
    """Return the user id carried by ``token`` or raise ``AuthorizationError``."""
    if not token:
        raise AuthorizationError("Unauthorized")
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise AuthorizationError("Invalid token") from e

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise AuthorizationError("Invalid token")
    return user_id


class SubscriptionRepository:
    """Subscriptions and the profiles used to resolve payer emails."""

    def __init__(self, records: RecordStore):
        self.records = records

    def save_profile(self, user_id: str, email: str) -> Profile:
        profile = Profile(user_id=user_id, email=email.strip().lower())
        self.records.upsert(PROFILES, {"id": user_id, **profile.model_dump()}, key="user_id")
        return profile

    def find_user_by_email(self, email: str) -> str:
        rows = self.records.select(PROFILES, email=email.strip().lower())
        if not rows:
            raise NotFoundError("User not found")
        return rows[0]["user_id"]

    def get(self, user_id: str) -> Optional[Subscription]:
        rows = self.records.select(SUBSCRIPTIONS, user_id=user_id)
        return Subscription(**rows[0]) if rows else None

    def has_active(self, user_id: str, now: datetime | None = None) -> bool:
        """True when the user's subscription is active and not yet expired."""
        subscription = self.get(user_id)
        if subscription is None or subscription.status != "active":
            return False
        if subscription.expires_at is None:
            return False
        expires_at = subscription.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at > (now or utcnow())

    def activate(
        self,
        user_id: str,
        plan_type: str,
        duration: timedelta,
        whop_order_id: str | None = None,
        whop_user_id: str | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        """Upsert an active subscription running ``duration`` from ``now``."""
        started_at = now or utcnow()
        subscription = Subscription(
            id=new_id(),
            user_id=user_id,
            plan_type=plan_type,
            status="active",
            whop_order_id=whop_order_id,
            whop_user_id=whop_user_id,
            started_at=started_at,
            expires_at=started_at + duration,
            updated_at=started_at,
        )
        row = self.records.upsert(SUBSCRIPTIONS, subscription.model_dump(mode="json"), key="user_id")
        logger.info(f"Activated {plan_type} subscription for user {user_id}")
        return Subscription(**row)

    def cancel(self, user_id: str) -> Optional[Subscription]:
        existing = self.get(user_id)
        if existing is None:
            logger.info(f"No subscription to cancel for user {user_id}")
            return None
        row = self.records.update(
            SUBSCRIPTIONS,
            existing.id,
            {"status": "cancelled", "updated_at": utcnow().isoformat()},
        )
        logger.info(f"Cancelled subscription for user {user_id}")
        return Subscription(**row)


def get_current_user_id(
    request: Request, token: Optional[str] = Depends(oauth2_scheme)
) -> str:
    settings: Settings = request.app.state.settings
    return decode_token(token, settings.jwt_secret, settings.jwt_algorithm)


def require_subscription(
    request: Request, user_id: str = Depends(get_current_user_id)
) -> str:
    """Authenticated user id, provided the paywall lets them through."""
    settings: Settings = request.app.state.settings
    if not settings.paywall_enabled:
        return user_id

    subscriptions: SubscriptionRepository = request.app.state.subscriptions
    if not subscriptions.has_active(user_id):
        raise AuthorizationError("Active subscription required")
    return user_id
