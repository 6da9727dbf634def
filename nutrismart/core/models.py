"""Core Data Models - Pydantic models for type safety.

Documents are stored with camelCase field names; attributes are snake_case
with camelCase aliases. All models are value objects with no behavior
beyond validation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """Base for every model that round-trips through the document store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self, exclude: Optional[set[str]] = None) -> dict[str, Any]:
        """Dump with store field names, dropping unset optionals."""
        return self.model_dump(
            by_alias=True, exclude_none=True, exclude=exclude, mode="python"
        )


class ProfileType(str, Enum):
    PATIENT = "patient"
    PROFESSIONAL = "professional"


class Role(str, Enum):
    SUPER_ADMIN = "super-admin"
    ADMIN = "admin"
    PROFESSIONAL = "professional"


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    INACTIVE = "inactive"


# ==================== Plans ====================


class MealPlanItem(DocumentModel):
    """One scheduled meal of a plan."""

    id: Optional[str] = None
    name: str = Field(min_length=1, description="Meal type, e.g. 'Almoço'")
    time: str = Field(pattern=r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$", description="HH:MM")
    items: str = Field(min_length=3, description="What the meal consists of")


class ActivePlan(DocumentModel):
    """The currently effective goals and scheduled meals for a patient."""

    meals: list[MealPlanItem] = Field(default_factory=list)
    calorie_goal: int = Field(gt=0, description="kcal")
    protein_goal: Optional[int] = Field(default=None, gt=0, description="grams")
    hydration_goal: int = Field(gt=0, description="ml")
    created_at: Optional[datetime] = None


class ProfessionalDetails(DocumentModel):
    specialty: Optional[str] = None


# ==================== Users ====================


class UserProfile(DocumentModel):
    """One per authenticated account, keyed by auth UID."""

    id: str
    tenant_id: str
    full_name: str
    email: str
    profile_type: ProfileType
    role: Optional[Role] = None
    created_at: Optional[datetime] = None

    subscription_status: Optional[SubscriptionStatus] = None
    trial_ends_at: Optional[datetime] = None

    professional_details: Optional[ProfessionalDetails] = None
    professional_room_ids: list[str] = Field(default_factory=list)

    age: Optional[int] = Field(default=None, ge=0)
    weight: Optional[float] = Field(default=None, gt=0)
    target_weight: Optional[float] = Field(default=None, gt=0)
    target_date: Optional[datetime] = None
    whatsapp_phone_number: Optional[str] = None
    patient_room_id: Optional[str] = None
    dashboard_share_code: Optional[str] = None
    calorie_goal: Optional[int] = Field(default=None, ge=0)
    protein_goal: Optional[int] = Field(default=None, ge=0)
    water_goal: Optional[int] = Field(default=None, ge=0)
    active_plan: Optional[ActivePlan] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


# ==================== Rooms & Chat ====================


class PatientInfo(DocumentModel):
    """Denormalized snapshot of the patient taken when the room is created."""

    name: str
    email: str
    age: Optional[int] = None
    weight: Optional[float] = None
    target_weight: Optional[float] = None


class LastMessage(DocumentModel):
    """Preview of the newest chat message, kept on the room for list views."""

    text: str
    sender_id: str
    created_at: Optional[datetime] = None


class Room(DocumentModel):
    """Pairing between one professional and one patient."""

    id: str
    tenant_id: str
    room_name: str
    professional_id: str
    patient_id: str
    patient_info: PatientInfo
    active_plan: ActivePlan
    plan_history: list[ActivePlan] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    last_message: Optional[LastMessage] = None
    last_read: dict[str, datetime] = Field(default_factory=dict)

    @field_validator("last_read", mode="before")
    @classmethod
    def _drop_pending_timestamps(cls, value: Any) -> Any:
        # Local snapshots can carry None until the server timestamp resolves.
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if v is not None}
        return value


class Message(DocumentModel):
    """A chat message in rooms/{roomId}/messages. Append-only."""

    id: str
    text: str
    sender_id: str
    sender_name: str
    created_at: Optional[datetime] = None
    is_professional: bool = False


# ==================== Time series ====================


class Food(DocumentModel):
    """One analysed food item as returned by the nutrition webhook."""

    name: str
    portion: float = Field(ge=0)
    unit: str
    calories: float = Field(default=0, ge=0, alias="calorias")
    protein: float = Field(default=0, ge=0, alias="proteinas")
    carbs: float = Field(default=0, ge=0, alias="carboidratos")
    fat: float = Field(default=0, ge=0, alias="gorduras")
    fiber: float = Field(default=0, ge=0, alias="fibras")


class FoodItem(BaseModel):
    """A food as the patient describes it, before analysis."""

    name: str = Field(min_length=1)
    portion: float = Field(gt=0)
    unit: str = Field(min_length=1)


class Totals(DocumentModel):
    calories: float = Field(default=0, ge=0, alias="calorias")
    protein: float = Field(default=0, ge=0, alias="proteinas")
    carbs: float = Field(default=0, ge=0, alias="carboidratos")
    fat: float = Field(default=0, ge=0, alias="gorduras")
    fiber: float = Field(default=0, ge=0, alias="fibras")


class MealData(DocumentModel):
    foods: list[Food] = Field(default_factory=list, alias="alimentos")
    totals: Totals = Field(default_factory=Totals, alias="totais")


class MealEntry(DocumentModel):
    """A logged meal in meal_entries/{id}."""

    id: str
    user_id: str
    date: str = Field(description="YYYY-MM-DD")
    meal_type: str
    meal_data: MealData
    created_at: Optional[datetime] = None


class HydrationEntry(DocumentModel):
    """Water intake for one day, stored at hydration_entries/{userId}_{date}."""

    id: Optional[str] = None
    user_id: str
    date: str
    intake: int = Field(ge=0, description="ml")
    goal: int = Field(gt=0, description="ml")


class WeightLog(DocumentModel):
    id: Optional[str] = None
    user_id: str
    weight: float = Field(gt=0, description="kg")
    date: str
    created_at: Optional[datetime] = None


# ==================== Tenants & Library ====================


class Tenant(DocumentModel):
    """An isolated clinic/brand. Billing fields are owned by the payment flow."""

    id: str
    name: str
    owner_id: str
    professional_ids: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    subscription_status: Optional[str] = None


class PlanTemplate(DocumentModel):
    id: Optional[str] = None
    tenant_id: str
    name: str = Field(min_length=1)
    description: str = ""
    calorie_goal: int = Field(gt=0)
    protein_goal: Optional[int] = Field(default=None, gt=0)
    hydration_goal: int = Field(gt=0)
    meals: list[MealPlanItem] = Field(default_factory=list)


class Guideline(DocumentModel):
    id: Optional[str] = None
    tenant_id: str
    title: str = Field(min_length=1)
    content: str


# ==================== External collaborators ====================


class RecipeNutrition(BaseModel):
    calories: str
    protein: str
    carbs: str
    fat: str


class Recipe(DocumentModel):
    """A structured recipe produced by the chef workflow."""

    title: str
    description: str
    prep_time: str
    cook_time: str
    servings: str
    ingredients: list[str]
    instructions: list[str]
    nutrition: RecipeNutrition


class ChefReply(BaseModel):
    """Free text from the chef workflow, with the recipe when one was found."""

    text: str = ""
    recipe: Optional[Recipe] = None


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"


class PixPayment(BaseModel):
    payment_id: str
    qr_code: str = Field(description="Base64 QR image")
    pix_code: str = Field(description="Copy-and-paste payment code")


# ==================== Summaries ====================


class DailySummary(BaseModel):
    """Summary of one day's intake against the goals in force."""

    total_calories: float = Field(ge=0)
    total_protein: float = Field(ge=0)
    total_carbs: float = Field(ge=0)
    total_fat: float = Field(ge=0)
    water_intake: int = Field(ge=0)
    calories_remaining: float = Field(description="Negative if over goal")
    protein_remaining: float = Field(description="Negative if over goal")
    water_remaining: int = Field(description="Negative if over goal")


class DaySummary(BaseModel):
    """Summary for a single day in the weekly report."""

    log_date: str
    total_calories: float
    total_protein: float
    water_intake: int
    meal_count: int


class WeeklyReport(BaseModel):
    """Weekly report of intake, hydration and weight trend."""

    week_start: str
    week_end: str
    daily_summaries: list[DaySummary]
    days_logged: int
    avg_daily_calories: float
    avg_daily_protein: float
    avg_daily_water: float
    days_within_calorie_goal: int
    start_weight: Optional[float] = None
    end_weight: Optional[float] = None
    weight_change: Optional[float] = Field(default=None, description="Negative = weight lost")
