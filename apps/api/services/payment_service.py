"""
Subscriptions, payment intents and plan-tier changes.

The remote implementation talks to Stripe (hosted Checkout, PaymentIntents,
subscription cancellation) and mirrors state into the relational database.
Plan tiers are applied through ``update_trainer_plan`` which always reads
PLAN_LIMITS, so a tier change resets ``max_students`` and ``ai_credits`` to
the tier's fixed values regardless of prior usage.
"""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.exc import IntegrityError

import models
from core.config import settings
from core.database import SessionFactory, SessionLocal, session_scope
from core.exceptions import InvalidWebhookError, NotFoundError, ProviderError
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
from services.plan_limits import (
    PLAN_LIMITS,
    can_add_student,
    get_plan_limits,
    is_active_subscription,
    net_amount,
    plan_from_price_id,
    platform_fee,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_PERIOD = timedelta(days=30)


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    pro_monthly_price_id: Optional[str]
    pro_yearly_price_id: Optional[str]
    elite_monthly_price_id: Optional[str]
    elite_yearly_price_id: Optional[str]
    checkout_success_url: str
    checkout_cancel_url: str
    webhook_secret: Optional[str] = None

    def price_aliases(self) -> Dict[str, Optional[str]]:
        return {
            "pro_monthly": self.pro_monthly_price_id,
            "pro_yearly": self.pro_yearly_price_id,
            "elite_monthly": self.elite_monthly_price_id,
            "elite_yearly": self.elite_yearly_price_id,
        }

    def resolve_price(self, price_id: str) -> str:
        """Map a plan alias ('elite_monthly') to the configured Stripe price; pass real IDs through."""
        return self.price_aliases().get(price_id) or price_id

    def plan_for_price(self, price_id: str) -> str:
        if price_id in (self.elite_monthly_price_id, self.elite_yearly_price_id):
            return "elite"
        if price_id in (self.pro_monthly_price_id, self.pro_yearly_price_id):
            return "pro"
        return plan_from_price_id(price_id)


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config from Settings.

    Fail closed: without a secret key no Stripe call is attempted.
    """
    secret_key = settings.STRIPE_SECRET_KEY or os.getenv("STRIPE_SECRET_TEST_KEY")
    if not secret_key:
        raise ProviderError("Stripe", "not configured (missing: STRIPE_SECRET_KEY)")

    base = settings.WEB_APP_BASE_URL.rstrip("/")
    return StripeConfig(
        secret_key=str(secret_key),
        pro_monthly_price_id=settings.STRIPE_PRICE_PRO_MONTHLY_ID,
        pro_yearly_price_id=settings.STRIPE_PRICE_PRO_YEARLY_ID,
        elite_monthly_price_id=settings.STRIPE_PRICE_ELITE_MONTHLY_ID,
        elite_yearly_price_id=settings.STRIPE_PRICE_ELITE_YEARLY_ID,
        checkout_success_url=settings.STRIPE_CHECKOUT_SUCCESS_URL or f"{base}/trainer/billing?checkout=success",
        checkout_cancel_url=settings.STRIPE_CHECKOUT_CANCEL_URL or f"{base}/trainer/billing?checkout=cancel",
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )


class IPaymentService(ABC):
    @abstractmethod
    def get_subscription(self, trainer_id: str) -> Optional[Subscription]:
        """The trainer's active subscription, if any."""

    @abstractmethod
    def create_subscription(self, trainer_id: str, request: CreateSubscriptionRequest) -> CreateSubscriptionResponse: ...

    @abstractmethod
    def cancel_subscription(self, subscription_id: str) -> Subscription: ...

    @abstractmethod
    def update_subscription(self, subscription_id: str, updates: SubscriptionUpdate) -> Subscription: ...

    @abstractmethod
    def create_payment_intent(self, amount: int, currency: str = "brl",
                              metadata: Optional[Dict[str, str]] = None,
                              trainer_id: Optional[str] = None) -> PaymentIntent: ...

    @abstractmethod
    def update_trainer_plan(self, trainer_id: str, plan: TrainerPlan) -> TrainerProfile: ...

    @abstractmethod
    def handle_stripe_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """Verify and apply a Stripe webhook delivery."""

    @abstractmethod
    def check_plan_limits(self, trainer_id: str) -> bool:
        """True when the trainer may add another student."""

    @abstractmethod
    def get_plan_limit_status(self, trainer_id: str) -> Optional[PlanLimitStatus]: ...


def fee_metadata(amount: int, plan: str) -> Dict[str, str]:
    """Platform fee split for a student payment, as Stripe metadata strings."""
    fee_percentage = get_plan_limits(plan).fee_percentage
    return {
        "plan": plan,
        "platform_fee": str(platform_fee(amount, fee_percentage)),
        "net_amount": str(net_amount(amount, fee_percentage)),
    }


def _field(obj: Any, name: str) -> Any:
    # Stripe objects are dict-like; test doubles are plain namespaces
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _from_timestamp(value: Any) -> Optional[datetime]:
    return datetime.fromtimestamp(int(value), tz=timezone.utc) if value else None


def _apply_plan_limits(profile: models.TrainerProfile, plan: str) -> None:
    limits = get_plan_limits(plan)
    profile.plan = plan
    profile.max_students = limits.max_students
    profile.ai_credits = limits.ai_credits
    profile.updated_at = datetime.now(timezone.utc)


def _intent_from_row(row: models.PaymentIntentRecord) -> PaymentIntent:
    return PaymentIntent(
        id=row.id,
        amount=row.amount,
        currency=row.currency,
        status=row.status,
        client_secret=row.client_secret,
        metadata=dict(row.metadata_json or {}),
    )


class StripePaymentService(IPaymentService):
    def __init__(self, session_factory: SessionFactory = SessionLocal, config: Optional[StripeConfig] = None):
        self._session_factory = session_factory
        self._config = config

    def _stripe(self) -> StripeConfig:
        cfg = self._config or _get_stripe_config()
        stripe.api_key = cfg.secret_key
        return cfg

    def get_subscription(self, trainer_id: str) -> Optional[Subscription]:
        with session_scope(self._session_factory) as db:
            row = (
                db.query(models.Subscription)
                .filter(models.Subscription.trainer_id == trainer_id)
                .filter(models.Subscription.status == "active")
                .order_by(models.Subscription.created_at.desc())
                .first()
            )
            return Subscription.model_validate(row) if row else None

    def create_subscription(self, trainer_id: str, request: CreateSubscriptionRequest) -> CreateSubscriptionResponse:
        """
        Start a Stripe Checkout session for the requested price.

        The plan is applied when Stripe confirms payment through the
        ``checkout.session.completed`` webhook, not here.
        """
        cfg = self._stripe()
        price_id = cfg.resolve_price(request.price_id)
        plan = cfg.plan_for_price(price_id)

        with session_scope(self._session_factory) as db:
            profile = db.get(models.TrainerProfile, trainer_id)
            if profile is None:
                raise NotFoundError("Trainer profile", trainer_id)
            customer_id = profile.stripe_customer_id
            email = profile.profile.email if profile.profile else None

        params: Dict[str, Any] = {
            "mode": "subscription",
            "success_url": request.success_url or cfg.checkout_success_url,
            "cancel_url": request.cancel_url or cfg.checkout_cancel_url,
            "line_items": [{"price": price_id, "quantity": 1}],
            "client_reference_id": trainer_id,
            "metadata": {"trainer_id": trainer_id, "plan": plan},
        }
        if customer_id:
            params["customer"] = customer_id
        elif email:
            params["customer_email"] = email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout failed for trainer {trainer_id}: {e}")
            raise ProviderError("Stripe", "checkout session creation failed") from e

        logger.info(f"Checkout session created for trainer {trainer_id} plan={plan}")
        return CreateSubscriptionResponse(session_id=str(session.id), url=str(session.url))

    def cancel_subscription(self, subscription_id: str) -> Subscription:
        with session_scope(self._session_factory) as db:
            row = db.get(models.Subscription, subscription_id)
            if row is None:
                raise NotFoundError("Subscription", subscription_id)
            if row.stripe_subscription_id:
                self._stripe()
                try:
                    stripe.Subscription.modify(row.stripe_subscription_id, cancel_at_period_end=True)
                except stripe.StripeError as e:
                    logger.error(f"Stripe cancellation failed for {subscription_id}: {e}")
                    raise ProviderError("Stripe", "subscription cancellation failed") from e
            row.status = "canceled"
            row.cancel_at_period_end = True
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            logger.info(f"Subscription canceled: {subscription_id}")
            return Subscription.model_validate(row)

    def update_subscription(self, subscription_id: str, updates: SubscriptionUpdate) -> Subscription:
        with session_scope(self._session_factory) as db:
            row = db.get(models.Subscription, subscription_id)
            if row is None:
                raise NotFoundError("Subscription", subscription_id)
            for key, value in updates.model_dump(exclude_unset=True).items():
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            return Subscription.model_validate(row)

    def create_payment_intent(self, amount: int, currency: str = "brl",
                              metadata: Optional[Dict[str, str]] = None,
                              trainer_id: Optional[str] = None) -> PaymentIntent:
        self._stripe()
        metadata = dict(metadata or {})
        if trainer_id:
            with session_scope(self._session_factory) as db:
                profile = db.get(models.TrainerProfile, trainer_id)
                if profile is None:
                    raise NotFoundError("Trainer profile", trainer_id)
                metadata.update(fee_metadata(amount, profile.plan))
        try:
            intent = stripe.PaymentIntent.create(amount=amount, currency=currency, metadata=metadata)
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent failed: {e}")
            raise ProviderError("Stripe", "payment intent creation failed") from e

        with session_scope(self._session_factory) as db:
            row = models.PaymentIntentRecord(
                id=str(intent.id),
                trainer_id=trainer_id,
                amount=amount,
                currency=currency,
                status=str(intent.status),
                client_secret=str(intent.client_secret),
                metadata_json=metadata,
                created_at=datetime.now(timezone.utc),
            )
            db.add(row)
            db.flush()
            return _intent_from_row(row)

    def update_trainer_plan(self, trainer_id: str, plan: TrainerPlan) -> TrainerProfile:
        with session_scope(self._session_factory) as db:
            profile = db.get(models.TrainerProfile, trainer_id)
            if profile is None:
                raise NotFoundError("Trainer profile", trainer_id)
            _apply_plan_limits(profile, plan)
            db.flush()
            result = TrainerProfile.model_validate(profile)
        logger.info(f"Trainer {trainer_id} moved to plan {plan}")
        return result

    def construct_event(self, payload: bytes, sig_header: str) -> Any:
        """Verify the Stripe-Signature header and parse the event."""
        cfg = self._stripe()
        if not cfg.webhook_secret:
            raise ProviderError("Stripe", "webhooks not configured (missing: STRIPE_WEBHOOK_SECRET)")
        try:
            return stripe.Webhook.construct_event(payload=payload, sig_header=sig_header, secret=cfg.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise InvalidWebhookError("Invalid webhook signature") from e

    def handle_stripe_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        return self.process_stripe_event(self.construct_event(payload, sig_header))

    def process_stripe_event(self, event: Any) -> Dict[str, Any]:
        """
        Apply a verified Stripe event.

        Each event id is recorded first, so a retried delivery is a no-op.
        Handled types:
        - checkout.session.completed: apply the purchased plan and record the subscription
        - customer.subscription.updated / deleted: mirror status, drop to free when it lapses
        - payment_intent.succeeded / payment_failed: mirror the intent status
        """
        event_id = str(_field(event, "id") or "")
        event_type = str(_field(event, "type") or "")
        if not event_id or not event_type:
            raise InvalidWebhookError("Webhook event is missing id or type")
        obj = _field(_field(event, "data"), "object")

        try:
            with session_scope(self._session_factory) as db:
                if db.get(models.StripeEvent, event_id) is not None:
                    return {"processed": False, "idempotent": True}
                db.add(models.StripeEvent(
                    event_id=event_id,
                    event_type=event_type,
                    stripe_created=_field(event, "created"),
                ))
                db.flush()

                if event_type == "checkout.session.completed":
                    result = self._complete_checkout(db, obj)
                elif event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
                    result = self._sync_subscription(db, obj, deleted=event_type.endswith("deleted"))
                elif event_type in ("payment_intent.succeeded", "payment_intent.payment_failed"):
                    result = self._sync_payment_intent(db, obj)
                else:
                    result = {"processed": False, "ignored": event_type}
        except IntegrityError:
            # A concurrent delivery of the same event won the insert
            logger.info(f"Stripe event {event_id} already recorded")
            return {"processed": False, "idempotent": True}

        logger.info(
            f"Stripe event {event_id} ({event_type}) handled",
            extra={"extra_fields": {"event_id": event_id, "event_type": event_type, **result}},
        )
        return result

    def _complete_checkout(self, db, session: Any) -> Dict[str, Any]:
        metadata = _field(session, "metadata") or {}
        trainer_id = _field(metadata, "trainer_id") or _field(session, "client_reference_id")
        plan = _field(metadata, "plan")
        if not trainer_id or plan not in PLAN_LIMITS:
            return {"processed": False, "reason": "missing_trainer_or_plan"}
        profile = db.get(models.TrainerProfile, trainer_id)
        if profile is None:
            return {"processed": False, "reason": "unknown_trainer", "trainer_id": trainer_id}

        customer_id = _field(session, "customer")
        stripe_subscription_id = _field(session, "subscription")
        _apply_plan_limits(profile, plan)
        if customer_id:
            profile.stripe_customer_id = customer_id

        row = None
        if stripe_subscription_id:
            row = (
                db.query(models.Subscription)
                .filter(models.Subscription.stripe_subscription_id == stripe_subscription_id)
                .first()
            )
        now = datetime.now(timezone.utc)
        if row is None:
            row = models.Subscription(
                trainer_id=trainer_id,
                stripe_subscription_id=stripe_subscription_id,
                current_period_start=now,
                current_period_end=now + SUBSCRIPTION_PERIOD,
            )
            db.add(row)
        row.plan = plan
        row.status = "active"
        row.cancel_at_period_end = False
        row.stripe_customer_id = customer_id
        row.updated_at = now
        db.flush()
        return {"processed": True, "trainer_id": trainer_id, "plan": plan, "subscription_id": row.id}

    def _sync_subscription(self, db, stripe_subscription: Any, deleted: bool) -> Dict[str, Any]:
        stripe_subscription_id = _field(stripe_subscription, "id")
        row = (
            db.query(models.Subscription)
            .filter(models.Subscription.stripe_subscription_id == stripe_subscription_id)
            .first()
        )
        if row is None:
            return {"processed": False, "reason": "unknown_subscription"}

        row.status = "canceled" if deleted else str(_field(stripe_subscription, "status") or row.status)
        row.cancel_at_period_end = bool(_field(stripe_subscription, "cancel_at_period_end"))
        row.current_period_start = _from_timestamp(_field(stripe_subscription, "current_period_start")) \
            or row.current_period_start
        row.current_period_end = _from_timestamp(_field(stripe_subscription, "current_period_end")) \
            or row.current_period_end
        row.updated_at = datetime.now(timezone.utc)

        downgraded = False
        if not is_active_subscription(row.status):
            profile = db.get(models.TrainerProfile, row.trainer_id)
            if profile is not None and profile.plan == row.plan:
                _apply_plan_limits(profile, "free")
                downgraded = True
        db.flush()
        return {"processed": True, "trainer_id": row.trainer_id, "status": row.status, "downgraded": downgraded}

    def _sync_payment_intent(self, db, intent: Any) -> Dict[str, Any]:
        row = db.get(models.PaymentIntentRecord, _field(intent, "id"))
        if row is None:
            return {"processed": False, "reason": "unknown_payment_intent"}
        row.status = str(_field(intent, "status") or row.status)
        db.flush()
        return {"processed": True, "payment_intent_id": row.id, "status": row.status}

    def _student_count(self, db, trainer_id: str) -> int:
        return (
            db.query(models.StudentProfile)
            .filter(models.StudentProfile.trainer_id == trainer_id)
            .count()
        )

    def check_plan_limits(self, trainer_id: str) -> bool:
        with session_scope(self._session_factory) as db:
            profile = db.get(models.TrainerProfile, trainer_id)
            if profile is None:
                return False
            return can_add_student(self._student_count(db, trainer_id), profile.max_students)

    def get_plan_limit_status(self, trainer_id: str) -> Optional[PlanLimitStatus]:
        with session_scope(self._session_factory) as db:
            profile = db.get(models.TrainerProfile, trainer_id)
            if profile is None:
                return None
            count = self._student_count(db, trainer_id)
            return PlanLimitStatus(
                plan=profile.plan,
                max_students=profile.max_students,
                current_students=count,
                can_add_students=can_add_student(count, profile.max_students),
                ai_credits=profile.ai_credits,
            )
