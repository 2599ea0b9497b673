"""Billing hooks: subscription, checkout, plan changes and limits."""
from typing import Any, Dict, Optional

from core.container import PAYMENT_SERVICE, container
from hooks.query_client import Mutation, QueryResult, get_query_client
from schemas import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    PaymentIntent,
    PlanLimitStatus,
    Subscription,
    SubscriptionUpdate,
    TrainerPlan,
    TrainerProfile,
)
from services.payment_service import IPaymentService

PLAN_KEYS = (("subscription",), ("plan-limits",), ("trainer-profile",), ("credit-balance",),
             ("admin-trainers",), ("dashboard",), ("ai-usage-stats",), ("admin-payments",), ("admin-report",))
PAYMENT_KEYS = (("dashboard",), ("admin-payments",), ("admin-report",))


def _payments() -> IPaymentService:
    return container.resolve(PAYMENT_SERVICE)


def use_subscription(trainer_id: Optional[str]) -> QueryResult[Optional[Subscription]]:
    return get_query_client().use_query(
        ("subscription", trainer_id),
        lambda: _payments().get_subscription(trainer_id),
        enabled=bool(trainer_id),
    )


def use_create_subscription(trainer_id: str) -> Mutation[CreateSubscriptionResponse]:
    def create(request: CreateSubscriptionRequest) -> CreateSubscriptionResponse:
        return _payments().create_subscription(trainer_id, request)

    return get_query_client().use_mutation(
        create,
        invalidates=PLAN_KEYS,
        success_toast="Redirecting to checkout...",
        error_toast="Could not create subscription",
    )


def use_cancel_subscription() -> Mutation[Subscription]:
    return get_query_client().use_mutation(
        lambda subscription_id: _payments().cancel_subscription(subscription_id),
        invalidates=(("subscription",),),
        success_toast="Subscription canceled",
        error_toast="Could not cancel subscription",
    )


def use_update_subscription() -> Mutation[Subscription]:
    def update(subscription_id: str, updates: SubscriptionUpdate) -> Subscription:
        return _payments().update_subscription(subscription_id, updates)

    return get_query_client().use_mutation(
        update,
        invalidates=(("subscription",),),
        error_toast="Could not update subscription",
    )


def use_update_trainer_plan() -> Mutation[TrainerProfile]:
    def update(trainer_id: str, plan: TrainerPlan) -> TrainerProfile:
        return _payments().update_trainer_plan(trainer_id, plan)

    return get_query_client().use_mutation(
        update,
        invalidates=PLAN_KEYS,
        success_toast="Plan updated",
        error_toast="Could not update plan",
    )


def use_check_plan_limits(trainer_id: Optional[str]) -> QueryResult[bool]:
    return get_query_client().use_query(
        ("plan-limits", trainer_id, "can-add"),
        lambda: _payments().check_plan_limits(trainer_id),
        enabled=bool(trainer_id),
    )


def use_plan_limits(trainer_id: Optional[str]) -> QueryResult[Optional[PlanLimitStatus]]:
    return get_query_client().use_query(
        ("plan-limits", trainer_id),
        lambda: _payments().get_plan_limit_status(trainer_id),
        enabled=bool(trainer_id),
    )


def use_create_payment_intent(trainer_id: Optional[str] = None) -> Mutation[PaymentIntent]:
    def create(amount: int, currency: str = "brl", metadata: Optional[Dict[str, str]] = None) -> PaymentIntent:
        return _payments().create_payment_intent(amount, currency, metadata, trainer_id=trainer_id)

    return get_query_client().use_mutation(
        create,
        invalidates=PAYMENT_KEYS,
        error_toast="Could not create payment intent",
    )


def use_stripe_webhook() -> Mutation[Dict[str, Any]]:
    """Apply a Stripe delivery; a completed checkout changes the plan behind every billing view."""
    return get_query_client().use_mutation(
        lambda payload, sig_header: _payments().handle_stripe_webhook(payload, sig_header),
        invalidates=(*PLAN_KEYS, *PAYMENT_KEYS),
    )
