"""
Domain shapes returned by every service implementation.

Both backends build these models: the remote one from ORM rows
(from_attributes), the local one from the JSON blob records.
"""
from pydantic import BaseModel, ConfigDict, Field, EmailStr
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal

Role = Literal["admin", "trainer", "student"]
TrainerPlan = Literal["free", "pro", "elite"]
StudentStatus = Literal["active", "paused", "cancelled"]
SessionStatus = Literal["scheduled", "completed", "cancelled"]
SubscriptionStatus = Literal["active", "canceled", "past_due", "trialing"]
CreditTransactionType = Literal["purchase", "usage", "refund", "bonus"]
AIRequestType = Literal["diet_plan", "workout_suggestion", "nutrition_analysis"]
ConsentType = Literal["data_processing", "marketing", "analytics", "cookies"]
MealType = Literal["breakfast", "lunch", "dinner", "snack"]


class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Auth / profiles
# ---------------------------------------------------------------------------

class User(DomainModel):
    id: str
    email: str
    created_at: Optional[datetime] = None
    email_confirmed_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None


class AuthSession(DomainModel):
    user: User
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: int  # epoch milliseconds
    token_type: str = "bearer"


class SignUpData(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Role = "trainer"
    phone: Optional[str] = None
    trainer_id: Optional[str] = None  # students only


class Profile(DomainModel):
    id: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: Role
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class TrainerProfile(DomainModel):
    id: str
    plan: TrainerPlan = "free"
    max_students: int
    ai_credits: int
    active_until: Optional[datetime] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    whatsapp_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StudentProfile(DomainModel):
    id: str
    trainer_id: Optional[str] = None
    gender: Optional[str] = None
    goals: Optional[str] = None
    fitness_level: Optional[str] = None
    menstrual_cycle_tracking: bool = False
    start_date: Optional[datetime] = None
    status: StudentStatus = "active"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StudentProfileUpdate(BaseModel):
    gender: Optional[str] = None
    goals: Optional[str] = None
    fitness_level: Optional[str] = None
    menstrual_cycle_tracking: Optional[bool] = None
    status: Optional[StudentStatus] = None


# ---------------------------------------------------------------------------
# Trainer operations: students, sessions, admin
# ---------------------------------------------------------------------------

class Student(DomainModel):
    """A student profile joined with the identity fields shown in lists."""
    id: str
    trainer_id: Optional[str] = None
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    goals: Optional[str] = None
    fitness_level: Optional[str] = None
    status: StudentStatus = "active"
    start_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NewStudent(BaseModel):
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = None
    gender: Optional[str] = None
    goals: Optional[str] = None
    fitness_level: Optional[str] = None


class TrainingSession(DomainModel):
    id: str
    trainer_id: str
    student_id: str
    scheduled_at: datetime
    duration_minutes: int = 60
    status: SessionStatus = "scheduled"
    notes: Optional[str] = None
    student_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NewTrainingSession(BaseModel):
    student_id: str
    scheduled_at: datetime
    duration_minutes: int = Field(default=60, ge=15, le=240)
    notes: Optional[str] = None


class TrainerSummary(DomainModel):
    """Admin view of a trainer account."""
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    plan: TrainerPlan
    max_students: int
    ai_credits: int
    active_students: int = 0
    created_at: Optional[datetime] = None


class DashboardStats(BaseModel):
    total_students: int
    active_students: int
    max_students: int
    sessions_today: int
    upcoming_sessions: int
    total_sessions: int
    monthly_revenue: int  # cents, succeeded payments this month
    diet_plans: int
    workout_plans: int
    ai_credits: int
    plan: TrainerPlan


class PaymentRecord(BaseModel):
    """Admin view of a student payment."""
    id: str
    trainer_id: Optional[str] = None
    trainer_name: Optional[str] = None
    amount: int  # cents
    currency: str = "brl"
    status: str
    platform_fee: int = 0  # cents
    created_at: Optional[datetime] = None


class PaymentStats(BaseModel):
    total_payments: int
    total_amount: int  # cents, every status
    succeeded_amount: int
    successful_payments: int
    pending_payments: int
    failed_payments: int
    platform_fees: int  # cents, succeeded payments only


class SystemSetting(DomainModel):
    key: str
    value: str
    description: Optional[str] = None
    updated_at: Optional[datetime] = None


class MonthlyRevenue(BaseModel):
    month: str  # YYYY-MM
    revenue: int  # cents


class PlatformReport(BaseModel):
    total_trainers: int
    total_students: int
    total_sessions: int
    total_revenue: int  # cents, succeeded payments
    plan_distribution: Dict[str, int]
    student_status: Dict[str, int]
    session_status: Dict[str, int]
    monthly_revenue: List[MonthlyRevenue]


# ---------------------------------------------------------------------------
# Workouts
# ---------------------------------------------------------------------------

class Exercise(DomainModel):
    id: str
    name: str
    description: Optional[str] = None
    muscle_groups: List[str] = Field(default_factory=list)
    equipment: Optional[str] = None
    difficulty_level: int = 1
    instructions: Optional[str] = None
    video_url: Optional[str] = None
    is_public: bool = False
    trainer_id: Optional[str] = None
    created_at: Optional[datetime] = None


class NewExercise(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    description: Optional[str] = None
    muscle_groups: List[str] = Field(default_factory=list)
    equipment: Optional[str] = None
    difficulty_level: int = Field(default=1, ge=1, le=5)
    instructions: Optional[str] = None
    video_url: Optional[str] = None
    is_public: bool = False


class WorkoutPlanExercise(DomainModel):
    id: str
    workout_plan_id: str
    exercise_id: str
    order_in_workout: int
    target_sets: int = 3
    target_reps: Optional[str] = None
    target_weight_kg: Optional[float] = None
    rest_seconds: int = 60
    notes: Optional[str] = None
    exercise: Optional[Exercise] = None


class NewWorkoutPlanExercise(BaseModel):
    exercise_id: str
    order_in_workout: Optional[int] = None
    target_sets: int = Field(default=3, ge=1, le=20)
    target_reps: Optional[str] = "10-12"
    target_weight_kg: Optional[float] = None
    rest_seconds: int = Field(default=60, ge=0, le=600)
    notes: Optional[str] = None


class WorkoutPlan(DomainModel):
    id: str
    trainer_id: str
    student_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    difficulty_level: int = 1
    estimated_duration_minutes: Optional[int] = None
    muscle_groups: List[str] = Field(default_factory=list)
    is_template: bool = True
    exercises: List[WorkoutPlanExercise] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NewWorkoutPlan(BaseModel):
    name: str = Field(min_length=3, max_length=200)
    description: Optional[str] = None
    student_id: Optional[str] = None
    difficulty_level: int = Field(default=1, ge=1, le=5)
    estimated_duration_minutes: Optional[int] = Field(default=None, ge=5, le=300)
    muscle_groups: List[str] = Field(default_factory=list)
    is_template: bool = True
    exercises: List[NewWorkoutPlanExercise] = Field(default_factory=list)


class WorkoutSession(DomainModel):
    id: str
    trainer_id: str
    student_id: str
    workout_plan_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: SessionStatus = "scheduled"
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    rating: Optional[int] = None
    created_at: Optional[datetime] = None


class NewWorkoutSession(BaseModel):
    student_id: str
    workout_plan_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: SessionStatus = "scheduled"
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)


# ---------------------------------------------------------------------------
# AI
# ---------------------------------------------------------------------------

class Ingredient(DomainModel):
    id: Optional[str] = None
    name: str
    amount: float
    unit: str
    calories_per_unit: float = 0
    protein_per_unit: float = 0
    carbs_per_unit: float = 0
    fat_per_unit: float = 0


class Meal(DomainModel):
    id: Optional[str] = None
    name: str
    meal_type: MealType
    calories: int
    protein: int
    carbs: int
    fat: int
    ingredients: List[Ingredient] = Field(default_factory=list)
    instructions: Optional[str] = None
    prep_time_minutes: Optional[int] = None


class DietPlan(DomainModel):
    id: str
    trainer_id: str
    student_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    target_calories: int
    target_protein: int
    target_carbs: int
    target_fat: int
    meals: List[Meal] = Field(default_factory=list)
    duration_days: int
    is_ai_generated: bool = True
    created_at: Optional[datetime] = None


class GenerateDietPlanRequest(BaseModel):
    student_id: str
    target_calories: int = Field(ge=800, le=6000)
    duration_days: int = Field(default=7, ge=1, le=90)
    dietary_restrictions: List[str] = Field(default_factory=list)
    meal_preferences: List[str] = Field(default_factory=list)
    health_goals: List[str] = Field(default_factory=list)


class ExerciseSuggestion(DomainModel):
    name: str
    description: Optional[str] = None
    muscle_groups: List[str] = Field(default_factory=list)
    equipment: Optional[str] = None
    sets: int = 3
    reps: str = "10-12"
    rest_seconds: int = 60
    instructions: Optional[str] = None
    video_url: Optional[str] = None


class WorkoutSuggestion(DomainModel):
    id: str
    trainer_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    difficulty_level: int
    estimated_duration_minutes: int
    muscle_groups: List[str] = Field(default_factory=list)
    exercises: List[ExerciseSuggestion] = Field(default_factory=list)
    is_ai_generated: bool = True
    created_at: Optional[datetime] = None


class GenerateWorkoutRequest(BaseModel):
    difficulty_level: int = Field(ge=1, le=5)
    duration_minutes: int = Field(ge=10, le=180)
    muscle_groups: List[str] = Field(min_length=1)
    equipment_available: List[str] = Field(default_factory=list)
    fitness_goals: List[str] = Field(default_factory=list)


class AIRequest(DomainModel):
    id: str
    trainer_id: str
    type: AIRequestType
    prompt: str
    response: str
    tokens_used: int = 0
    cost_credits: int
    created_at: Optional[datetime] = None


class CreditTransaction(DomainModel):
    id: str
    trainer_id: str
    type: CreditTransactionType
    amount: int
    description: Optional[str] = None
    ai_request_id: Optional[str] = None
    created_at: Optional[datetime] = None


class AIUsageStats(BaseModel):
    total_requests: int
    credits_used: int
    credits_remaining: int
    most_used_feature: str
    success_rate: float


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class Subscription(DomainModel):
    id: str
    trainer_id: str
    plan: TrainerPlan
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubscriptionUpdate(BaseModel):
    plan: Optional[TrainerPlan] = None
    status: Optional[SubscriptionStatus] = None
    cancel_at_period_end: Optional[bool] = None
    current_period_end: Optional[datetime] = None


class CreateSubscriptionRequest(BaseModel):
    price_id: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CreateSubscriptionResponse(BaseModel):
    session_id: str
    url: str


class PaymentIntent(DomainModel):
    id: str
    amount: int  # cents
    currency: str = "brl"
    status: str
    client_secret: str
    metadata: Dict[str, str] = Field(default_factory=dict)


class PlanLimitStatus(BaseModel):
    plan: TrainerPlan
    max_students: int
    current_students: int
    can_add_students: bool
    ai_credits: int


# ---------------------------------------------------------------------------
# Security / LGPD
# ---------------------------------------------------------------------------

class RateLimitStatus(BaseModel):
    remaining: int
    reset_time: float  # epoch seconds
    limit: int
    is_blocked: bool


class LGPDConsent(DomainModel):
    id: str
    user_id: str
    consent_type: ConsentType
    consented: bool
    consent_date: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    version: str = "1.0"


class PrivacySettings(DomainModel):
    id: Optional[str] = None
    user_id: str
    data_processing_consent: bool = True
    marketing_consent: bool = False
    analytics_consent: bool = False
    profile_visibility: Literal["public", "private", "trainers_only"] = "private"
    data_retention_days: int = 365
    newsletter_subscription: bool = False
    updated_at: Optional[datetime] = None


class PrivacySettingsUpdate(BaseModel):
    data_processing_consent: Optional[bool] = None
    marketing_consent: Optional[bool] = None
    analytics_consent: Optional[bool] = None
    profile_visibility: Optional[Literal["public", "private", "trainers_only"]] = None
    data_retention_days: Optional[int] = Field(default=None, ge=30, le=3650)
    newsletter_subscription: Optional[bool] = None


class DataExportRequest(DomainModel):
    id: str
    user_id: str
    status: Literal["pending", "processing", "completed", "failed"]
    requested_at: datetime
    completed_at: Optional[datetime] = None
    download_url: Optional[str] = None
    expires_at: Optional[datetime] = None


class DataDeletionRequest(DomainModel):
    id: str
    user_id: str
    status: Literal["pending", "processing", "completed", "failed"]
    reason: Optional[str] = None
    requested_at: datetime
    scheduled_for: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class DataRequests(BaseModel):
    exports: List[DataExportRequest] = Field(default_factory=list)
    deletions: List[DataDeletionRequest] = Field(default_factory=list)


class SecurityLog(DomainModel):
    id: str
    user_id: Optional[str] = None
    event_type: str
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    risk_level: Literal["low", "medium", "high"] = "low"
    timestamp: datetime


class SecurityAlert(DomainModel):
    id: str
    type: str
    severity: Literal["low", "medium", "high", "critical"]
    description: str
    user_id: Optional[str] = None
    resolved: bool = False
    created_at: datetime


class AuditLog(DomainModel):
    id: str
    user_id: str
    action: str
    resource: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    timestamp: datetime


class ComplianceSummary(BaseModel):
    total_users: int
    consent_rate: int
    data_requests: int
    security_incidents: int
    compliance_score: int


class ComplianceReport(BaseModel):
    id: str
    report_type: str = "lgpd_compliance"
    period_start: str
    period_end: str
    generated_at: datetime
    summary: ComplianceSummary
    details: Dict[str, Dict[str, int]]
