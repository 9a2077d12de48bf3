"""
Subscription Router
===================
GET  /api/v1/subscription/status    is the caller premium?
POST /api/v1/subscription/checkout  mock checkout, grants premium
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from haven.config import get_settings
from haven.db.supabase import get_supabase_client
from haven.models.profile import CheckoutResponse, SubscriptionStatus
from haven.routers.deps import get_authenticated_user_id
from haven.services.subscription import SubscriptionError, check_subscription, create_checkout

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/subscription", tags=["subscription"])


@router.get("/status", response_model=SubscriptionStatus, summary="Subscription status")
async def subscription_status(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> SubscriptionStatus:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)
    try:
        return await check_subscription(db, user_id)
    except SubscriptionError as exc:
        logger.error("Error checking subscription for %s: %s", user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to check subscription status", "code": "db_error"},
        ) from exc


@router.post("/checkout", response_model=CheckoutResponse, summary="Start checkout")
async def checkout(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> CheckoutResponse:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)
    try:
        return await create_checkout(db, user_id, get_settings().checkout_success_url)
    except SubscriptionError as exc:
        logger.error("Error creating checkout session for %s: %s", user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to create checkout session", "code": "db_error"},
        ) from exc
