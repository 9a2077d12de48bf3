"""
Subscription Service
====================
Premium entitlement lookups and the mock checkout flow. There is no
payment gateway: checkout hands back a placeholder session and flips
``profiles.is_premium`` straight away.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import Any

from haven.models.profile import CheckoutResponse, CheckoutSession, SubscriptionStatus
from haven.sync.query import run_query

logger = logging.getLogger(__name__)

SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits
SESSION_ID_LENGTH = 13


class SubscriptionError(Exception):
    """Profile lookup or update failed."""


def new_session_id() -> str:
    return "cs_" + "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(SESSION_ID_LENGTH))


async def check_subscription(client: Any, user_id: str) -> SubscriptionStatus:
    """Read ``profiles.is_premium``. A missing profile means free tier."""
    result = await run_query(
        lambda: client.table("profiles").select("is_premium").eq("id", user_id).maybe_single().execute()
    )
    if not result.ok:
        raise SubscriptionError(result.error)

    row = result.data if isinstance(result.data, dict) else {}
    is_premium = bool(row.get("is_premium"))
    logger.info("Checked subscription for user %s. Premium: %s", user_id, is_premium)
    return SubscriptionStatus(is_premium=is_premium)


async def create_checkout(client: Any, user_id: str, success_url: str) -> CheckoutResponse:
    session = CheckoutSession(id=new_session_id(), url=success_url)

    result = await run_query(
        lambda: client.table("profiles").update({"is_premium": True}).eq("id", user_id).execute()
    )
    if not result.ok:
        raise SubscriptionError(result.error)

    logger.info("Created checkout session for user %s: %s", user_id, session.id)
    return CheckoutResponse(success=True, session=session, is_premium=True)
