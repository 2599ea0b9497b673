"""
Payment service over the local JSON blob.

No money moves in local mode: checkout completes immediately (the
subscription is recorded as active and the plan applied) and payment
intents always succeed.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.exceptions import UnsupportedOperationError
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
from services.local_store import LocalStorageService, now_iso
from services.payment_service import SUBSCRIPTION_PERIOD, IPaymentService, fee_metadata
from services.plan_limits import can_add_student, get_plan_limits, plan_from_price_id

logger = logging.getLogger(__name__)


def _short_id() -> str:
    return secrets.token_hex(6)


class LocalStoragePaymentService(IPaymentService):
    def __init__(self, store: LocalStorageService):
        self.store = store

    def get_subscription(self, trainer_id: str) -> Optional[Subscription]:
        data = self.store.snapshot()
        active = self.store.where(data, "subscriptions", trainer_id=trainer_id, status="active")
        return Subscription.model_validate(active[-1]) if active else None

    def create_subscription(self, trainer_id: str, request: CreateSubscriptionRequest) -> CreateSubscriptionResponse:
        plan = plan_from_price_id(request.price_id)
        now = datetime.now(timezone.utc)
        subscription_id = f"sub_{_short_id()}"
        record = {
            "id": subscription_id,
            "trainer_id": trainer_id,
            "plan": plan,
            "status": "active",
            "current_period_start": now.isoformat(),
            "current_period_end": (now + SUBSCRIPTION_PERIOD).isoformat(),
            "cancel_at_period_end": False,
            "stripe_subscription_id": f"stripe_{subscription_id}",
            "stripe_customer_id": f"cus_{trainer_id}",
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }
        with self.store.transaction() as data:
            self.store.require(data, "trainer_profiles", trainer_id, "Trainer profile")
            data["subscriptions"].append(record)
            self._apply_plan(data, trainer_id, plan)

        logger.info(f"Local subscription {subscription_id} created for trainer {trainer_id} plan={plan}")
        # Checkout is instantaneous locally, so send the user straight to the success page
        return CreateSubscriptionResponse(
            session_id=f"cs_{subscription_id}",
            url=request.success_url or "/trainer/billing?checkout=success",
        )

    def cancel_subscription(self, subscription_id: str) -> Subscription:
        with self.store.transaction() as data:
            record = self.store.require(data, "subscriptions", subscription_id, "Subscription")
            record["status"] = "canceled"
            record["cancel_at_period_end"] = True
            record["updated_at"] = now_iso()
            result = Subscription.model_validate(record)
        logger.info(f"Subscription canceled: {subscription_id}")
        return result

    def update_subscription(self, subscription_id: str, updates: SubscriptionUpdate) -> Subscription:
        with self.store.transaction() as data:
            record = self.store.require(data, "subscriptions", subscription_id, "Subscription")
            record.update(updates.model_dump(mode="json", exclude_unset=True))
            record["updated_at"] = now_iso()
            return Subscription.model_validate(record)

    def create_payment_intent(self, amount: int, currency: str = "brl",
                              metadata: Optional[Dict[str, str]] = None,
                              trainer_id: Optional[str] = None) -> PaymentIntent:
        intent_id = f"pi_{_short_id()}"
        metadata = dict(metadata or {})
        with self.store.transaction() as data:
            if trainer_id:
                profile = self.store.require(data, "trainer_profiles", trainer_id, "Trainer profile")
                metadata.update(fee_metadata(amount, profile["plan"]))
            intent = PaymentIntent(
                id=intent_id,
                amount=amount,
                currency=currency,
                status="succeeded",
                client_secret=f"{intent_id}_secret_{_short_id()}",
                metadata=metadata,
            )
            data["payment_intents"].append({
                **intent.model_dump(),
                "trainer_id": trainer_id,
                "created_at": now_iso(),
            })
        return intent

    @staticmethod
    def _apply_plan(data, trainer_id: str, plan: str) -> dict:
        limits = get_plan_limits(plan)
        profile = LocalStorageService.require(data, "trainer_profiles", trainer_id, "Trainer profile")
        profile["plan"] = plan
        profile["max_students"] = limits.max_students
        profile["ai_credits"] = limits.ai_credits
        profile["updated_at"] = now_iso()
        return profile

    def update_trainer_plan(self, trainer_id: str, plan: TrainerPlan) -> TrainerProfile:
        with self.store.transaction() as data:
            profile = self._apply_plan(data, trainer_id, plan)
            result = TrainerProfile.model_validate(profile)
        logger.info(f"Trainer {trainer_id} moved to plan {plan}")
        return result

    def handle_stripe_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        # Local checkout applies the plan immediately; there is nothing to confirm
        raise UnsupportedOperationError("Stripe webhooks are only accepted with remote data")

    def check_plan_limits(self, trainer_id: str) -> bool:
        status = self.get_plan_limit_status(trainer_id)
        return status.can_add_students if status else False

    def get_plan_limit_status(self, trainer_id: str) -> Optional[PlanLimitStatus]:
        data = self.store.snapshot()
        profile = self.store.find(data, "trainer_profiles", trainer_id)
        if profile is None:
            return None
        count = len(self.store.where(data, "student_profiles", trainer_id=trainer_id))
        return PlanLimitStatus(
            plan=profile["plan"],
            max_students=profile["max_students"],
            current_students=count,
            can_add_students=can_add_student(count, profile["max_students"]),
            ai_credits=profile["ai_credits"],
        )
