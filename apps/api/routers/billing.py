"""
Billing endpoints: plan catalog, subscription lifecycle, payment intents and plan limits.

Checkout runs through Stripe in the remote backend; the local backend
activates the subscription immediately.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import logging

from core.auth import require_trainer
from hooks import use_payments
from schemas import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    PaymentIntent,
    PlanLimitStatus,
    Profile,
    Subscription,
    SubscriptionUpdate,
)
from services.plan_limits import format_price, plan_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])


class PaymentIntentRequest(BaseModel):
    amount: int = Field(gt=0)  # cents
    currency: str = "brl"
    metadata: Optional[Dict[str, str]] = None


def _own_subscription(subscription_id: str, trainer: Profile) -> Subscription:
    current = use_payments.use_subscription(trainer.id).unwrap()
    if current is None or current.id != subscription_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return current


@router.get("/plans")
def list_plans() -> List[Dict[str, Any]]:
    """Every tier with its limits and prices, cheapest first."""
    return [
        {**plan, "monthly_price_display": format_price(plan["monthly_price"])}
        for plan in plan_catalog()
    ]


@router.get("/subscription", response_model=Optional[Subscription])
def get_subscription(trainer: Profile = Depends(require_trainer)):
    return use_payments.use_subscription(trainer.id).unwrap()


@router.post("/checkout", response_model=CreateSubscriptionResponse)
def create_checkout(body: CreateSubscriptionRequest, trainer: Profile = Depends(require_trainer)):
    result = use_payments.use_create_subscription(trainer.id).mutate_or_raise(body)
    logger.info(
        f"Checkout started for trainer {trainer.id}",
        extra={"extra_fields": {"trainer_id": trainer.id, "price_id": body.price_id}},
    )
    return result


@router.post("/subscription/{subscription_id}/cancel", response_model=Subscription)
def cancel_subscription(subscription_id: str, trainer: Profile = Depends(require_trainer)):
    _own_subscription(subscription_id, trainer)
    return use_payments.use_cancel_subscription().mutate_or_raise(subscription_id)


@router.patch("/subscription/{subscription_id}", response_model=Subscription)
def update_subscription(subscription_id: str, updates: SubscriptionUpdate,
                        trainer: Profile = Depends(require_trainer)):
    _own_subscription(subscription_id, trainer)
    return use_payments.use_update_subscription().mutate_or_raise(subscription_id, updates)


@router.post("/payment-intents", response_model=PaymentIntent, status_code=status.HTTP_201_CREATED)
def create_payment_intent(body: PaymentIntentRequest, trainer: Profile = Depends(require_trainer)):
    """Charge a student. The amount is in cents."""
    metadata = {**(body.metadata or {}), "trainer_id": trainer.id}
    return use_payments.use_create_payment_intent(trainer.id).mutate_or_raise(
        body.amount, body.currency, metadata
    )


@router.get("/limits", response_model=PlanLimitStatus)
def plan_limits(trainer: Profile = Depends(require_trainer)):
    limits = use_payments.use_plan_limits(trainer.id).unwrap()
    if limits is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trainer profile not found")
    return limits


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request) -> Dict[str, Any]:
    """
    Stripe webhook receiver.

    Stripe calls this without a bearer token; the Stripe-Signature header is
    verified against STRIPE_WEBHOOK_SECRET before anything is applied.
    """
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe-Signature header")
    payload = await request.body()
    result = use_payments.use_stripe_webhook().mutate_or_raise(payload, sig)
    return {"ok": True, "result": result}
