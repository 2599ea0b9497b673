from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, DateTime, ForeignKey, Text, String, Index, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_uuid)
    email = Column(Text, unique=True, nullable=False, index=True)
    password_hash = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    last_sign_in_at = Column(DateTime(timezone=True), nullable=True)

    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    phone = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default="trainer")  # 'admin' | 'trainer' | 'student'
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="profile")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'trainer', 'student')", name="ck_profiles_role"),
    )

    @property
    def email(self):
        return self.user.email if self.user else None


class TrainerProfile(Base):
    __tablename__ = "trainer_profiles"

    id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    plan = Column(Text, nullable=False, default="free")
    max_students = Column(Integer, nullable=False)
    ai_credits = Column(Integer, nullable=False, default=0)
    active_until = Column(DateTime(timezone=True), nullable=True)
    avatar_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    whatsapp_number = Column(Text, nullable=True)
    stripe_customer_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    profile = relationship("Profile", lazy="joined")

    __table_args__ = (
        # The conditional decrement in the AI service relies on this never going negative
        CheckConstraint("ai_credits >= 0", name="ck_trainer_profiles_credits_non_negative"),
    )


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    gender = Column(Text, nullable=True)
    goals = Column(Text, nullable=True)
    fitness_level = Column(Text, nullable=True)
    menstrual_cycle_tracking = Column(Boolean, nullable=False, default=False)
    start_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    status = Column(Text, nullable=False, default="active")  # active|paused|cancelled
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    profile = relationship("Profile", lazy="joined")


class TrainingSession(Base):
    """Scheduled appointment between a trainer and a student."""

    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(64), ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    status = Column(Text, nullable=False, default="scheduled")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    student = relationship("StudentProfile", lazy="joined")


class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(String(64), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    muscle_groups = Column(JSON, nullable=False, default=list)
    equipment = Column(Text, nullable=True)
    difficulty_level = Column(Integer, nullable=False, default=1)
    instructions = Column(Text, nullable=True)
    video_url = Column(Text, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WorkoutPlan(Base):
    __tablename__ = "workout_plans"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(64), ForeignKey("student_profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    difficulty_level = Column(Integer, nullable=False, default=1)
    estimated_duration_minutes = Column(Integer, nullable=True)
    muscle_groups = Column(JSON, nullable=False, default=list)
    is_template = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    exercises = relationship(
        "WorkoutPlanExercise",
        back_populates="workout_plan",
        order_by="WorkoutPlanExercise.order_in_workout",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class WorkoutPlanExercise(Base):
    __tablename__ = "workout_plan_exercises"

    id = Column(String(64), primary_key=True, default=_uuid)
    workout_plan_id = Column(String(64), ForeignKey("workout_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(String(64), ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False)
    order_in_workout = Column(Integer, nullable=False)
    target_sets = Column(Integer, nullable=False, default=3)
    target_reps = Column(Text, nullable=True)
    target_weight_kg = Column(Float, nullable=True)
    rest_seconds = Column(Integer, nullable=False, default=60)
    notes = Column(Text, nullable=True)

    workout_plan = relationship("WorkoutPlan", back_populates="exercises")
    exercise = relationship("Exercise", lazy="joined")


class WorkoutSession(Base):
    __tablename__ = "workout_sessions"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(64), ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    workout_plan_id = Column(String(64), ForeignKey("workout_plans.id", ondelete="SET NULL"), nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(Text, nullable=False, default="scheduled")
    duration_minutes = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class DietPlan(Base):
    __tablename__ = "diet_plans"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(64), ForeignKey("student_profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    target_calories = Column(Integer, nullable=False)
    target_protein = Column(Integer, nullable=False)
    target_carbs = Column(Integer, nullable=False)
    target_fat = Column(Integer, nullable=False)
    meals = Column(JSON, nullable=False, default=list)  # meals own their ingredients
    duration_days = Column(Integer, nullable=False)
    is_ai_generated = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WorkoutSuggestion(Base):
    __tablename__ = "workout_suggestions"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    difficulty_level = Column(Integer, nullable=False)
    estimated_duration_minutes = Column(Integer, nullable=False)
    muscle_groups = Column(JSON, nullable=False, default=list)
    exercises = Column(JSON, nullable=False, default=list)
    is_ai_generated = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AIRequest(Base):
    __tablename__ = "ai_requests"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Text, nullable=False)
    prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    tokens_used = Column(Integer, nullable=False, default=0)
    cost_credits = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CreditTransaction(Base):
    """Append-only credit ledger. Negative amounts are usage, positive are grants."""

    __tablename__ = "credit_transactions"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Text, nullable=False)  # purchase|usage|refund|bonus
    amount = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    ai_request_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    plan = Column(Text, nullable=False)
    status = Column(Text, nullable=False, index=True)  # active|canceled|past_due|trialing
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    stripe_subscription_id = Column(Text, nullable=True, index=True)
    stripe_customer_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class PaymentIntentRecord(Base):
    __tablename__ = "payment_intents"

    id = Column(String(64), primary_key=True, default=_uuid)
    trainer_id = Column(String(64), ForeignKey("trainer_profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(Text, nullable=False, default="brl")
    status = Column(Text, nullable=False)
    client_secret = Column(Text, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class StripeEvent(Base):
    """Processed Stripe webhook events. Stripe retries deliveries, so ids are recorded once."""

    __tablename__ = "stripe_events"

    event_id = Column(Text, primary_key=True)  # evt_*
    event_type = Column(Text, nullable=False, index=True)
    stripe_created = Column(Integer, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class LGPDConsent(Base):
    __tablename__ = "lgpd_consents"

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    consent_type = Column(Text, nullable=False)
    consented = Column(Boolean, nullable=False)
    consent_date = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    version = Column(Text, nullable=False, default="1.0")


class PrivacySettings(Base):
    __tablename__ = "privacy_settings"

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    data_processing_consent = Column(Boolean, nullable=False, default=True)
    marketing_consent = Column(Boolean, nullable=False, default=False)
    analytics_consent = Column(Boolean, nullable=False, default=False)
    profile_visibility = Column(Text, nullable=False, default="private")
    data_retention_days = Column(Integer, nullable=False, default=365)
    newsletter_subscription = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class DataExportRequest(Base):
    __tablename__ = "data_export_requests"

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, nullable=False, default="pending")
    requested_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    download_url = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)


class DataDeletionRequest(Base):
    __tablename__ = "data_deletion_requests"

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, nullable=False, default="pending")
    reason = Column(Text, nullable=True)
    requested_at = Column(DateTime(timezone=True), nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class SecurityLog(Base):
    __tablename__ = "security_logs"

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=True, index=True)
    event_type = Column(Text, nullable=False, index=True)
    details = Column(JSON, nullable=False, default=dict)
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    risk_level = Column(Text, nullable=False, default="low")
    timestamp = Column(DateTime(timezone=True), nullable=False)


class SecurityAlert(Base):
    __tablename__ = "security_alerts"

    id = Column(String(64), primary_key=True, default=_uuid)
    type = Column(Text, nullable=False)
    severity = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    user_id = Column(String(64), nullable=True)
    resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    action = Column(Text, nullable=False)
    resource = Column(Text, nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_user_timestamp", "user_id", "timestamp"),
    )


class SystemSetting(Base):
    __tablename__ = "system_settings"

    id = Column(String(64), primary_key=True, default=_uuid)
    key = Column(Text, unique=True, nullable=False)
    value = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
