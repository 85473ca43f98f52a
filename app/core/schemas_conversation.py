"""Pydantic models for the conversation pipeline.

Field names follow the Supabase column names (snake_case), so rows read from
``food_logs`` / ``exercise_logs`` / ``interaction_logs`` / ``profiles``
validate directly into these models.
"""

from enum import Enum
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class LogKind(str, Enum):
    """Categories of per-user daily records."""

    FOOD = "food"
    EXERCISE = "exercise"
    INTERACTION = "interaction"


class LogSource(str, Enum):
    """Where a food/exercise record came from."""

    USER_INPUT = "user-input"
    AGENTIC = "agentic"
    DATABASE = "database"
    FITNESS_TRACKER = "fitness-tracker"


MealType = Literal["breakfast", "lunch", "dinner", "snack"]
ExerciseType = Literal["cardio", "strength", "flexibility", "sports", "other"]
Intensity = Literal["light", "moderate", "vigorous"]


def _coerce_choice(value: Any, choices: Any, default: str) -> str:
    """Lowercase a free-form label and fall back to ``default`` if unknown."""
    normalized = str(value or "").strip().lower()
    return normalized if normalized in get_args(choices) else default


# =============================================================================
# Profile
# =============================================================================


class UserProfile(BaseModel):
    """Demographic and physiology fields plus derived BMR/TDEE."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None
    age: int | None = None
    gender: str | None = None
    height: float | None = Field(default=None, description="Height in cm")
    weight: float | None = Field(default=None, description="Weight in kg")
    activity_level: str | None = None
    goal: str | None = None
    dietary_preferences: dict[str, Any] | None = None

    # Derived, recomputed on every load
    bmr: int | None = None
    tdee: int | None = None


# =============================================================================
# Log entries
# =============================================================================


class Macros(BaseModel):
    """Macronutrients in grams."""

    model_config = ConfigDict(extra="ignore")

    protein: float = 0
    carbs: float = 0
    fat: float = 0
    fiber: float | None = None
    sugar: float | None = None


class FoodLogEntry(BaseModel):
    """A single food record for one user on one date."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    user_id: str | None = None
    name: str
    description: str | None = None
    portion_size: str | None = None
    calories: float = 0
    macros: Macros | None = None
    meal_type: MealType = "snack"
    logged_at: str | None = None
    date: str | None = None
    source: str = LogSource.USER_INPUT.value

    @field_validator("meal_type", mode="before")
    @classmethod
    def _normalize_meal_type(cls, v: Any) -> str:
        return _coerce_choice(v, MealType, "snack")

    @field_validator("calories", mode="before")
    @classmethod
    def _null_calories(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def kind(self) -> LogKind:
        return LogKind.FOOD


class ExerciseLogEntry(BaseModel):
    """A single exercise record for one user on one date."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    user_id: str | None = None
    name: str
    description: str | None = None
    type: ExerciseType = "other"
    duration: float = 0
    intensity: Intensity = "moderate"
    calories_burned: float = 0
    logged_at: str | None = None
    date: str | None = None
    source: str = LogSource.USER_INPUT.value

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> str:
        return _coerce_choice(v, ExerciseType, "other")

    @field_validator("intensity", mode="before")
    @classmethod
    def _normalize_intensity(cls, v: Any) -> str:
        return _coerce_choice(v, Intensity, "moderate")

    @field_validator("duration", "calories_burned", mode="before")
    @classmethod
    def _null_numbers(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def kind(self) -> LogKind:
        return LogKind.EXERCISE


LogEntry = FoodLogEntry | ExerciseLogEntry


class Source(BaseModel):
    """A knowledge citation."""

    url: str
    title: str | None = None


class StructuredAnswer(BaseModel):
    """The user-visible output of a conversational turn."""

    model_config = ConfigDict(extra="ignore")

    text: str
    suggestions: list[str] = Field(default_factory=list)
    data_summary: dict[str, Any] | None = None
    error: str | None = None

    @field_validator("suggestions", mode="before")
    @classmethod
    def _null_suggestions(cls, v: Any) -> Any:
        return [] if v is None else v


class InteractionLogEntry(BaseModel):
    """One persisted record per conversational turn."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    timestamp: str
    query: str
    llm_response: StructuredAnswer | None = None
    sources: list[Source] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Stage outputs
# =============================================================================


class KnowledgeResult(BaseModel):
    """Factual payload from the knowledge service."""

    content: str | None = None
    sources: list[Source] = Field(default_factory=list)


class LogIntent(BaseModel):
    """An unquantified food/exercise event phrase extracted from the query."""

    kind: Literal["food", "exercise"]
    raw_phrase: str = Field(..., min_length=1)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class CalorieSummary(BaseModel):
    """Daily calorie totals. ``net`` is undefined whenever ``tdee`` is."""

    consumed: float = 0
    burned: float = 0
    tdee: float | None = None
    net: float | None = None

    def as_derived_data(self) -> dict[str, Any]:
        """Calorie fields in the shape used by derived_data / data_summary."""
        return {
            "consumed_calories": self.consumed,
            "burned_calories": self.burned,
            "tdee": self.tdee,
            "net_calories": self.net,
            "remaining_calories": self.net,
        }


class ReasoningResult(BaseModel):
    """Output of the reasoning stage."""

    model_config = ConfigDict(extra="ignore")

    insights: str = ""
    suggestions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    derived_data: dict[str, Any] = Field(default_factory=dict)
    intents: list[LogIntent] = Field(default_factory=list)
    error: str | None = None

    @field_validator("suggestions", "warnings", "intents", mode="before")
    @classmethod
    def _null_lists(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("derived_data", mode="before")
    @classmethod
    def _null_derived(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("insights", mode="before")
    @classmethod
    def _flatten_insights(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, list):
            return "\n".join(str(item).strip() for item in v if str(item).strip())
        return v


class PersistOutcome(BaseModel):
    """What happened to one enriched log during persistence."""

    kind: LogKind
    name: str
    status: Literal["saved", "duplicate", "error"]
    detail: str | None = None


# =============================================================================
# API
# =============================================================================


class ConversationRequest(BaseModel):
    """Request model for a conversational turn."""

    user_id: str = Field(..., min_length=1, description="User (or guest) id")
    query: str = Field(..., min_length=1, description="Free-text user query")
    session_id: str | None = Field(default=None, description="Conversation session id")
    guest_profile: UserProfile | None = Field(
        default=None, description="Profile fields supplied by a guest client"
    )


class ConversationResponse(BaseModel):
    """Response model for a conversational turn."""

    answer: StructuredAnswer
    sources: list[Source] = Field(default_factory=list)


class HistoryMessage(BaseModel):
    """A single chronological entry in the day's conversation history."""

    role: Literal["user", "assistant"]
    timestamp: str
    query: str | None = None
    answer: StructuredAnswer | None = None
    sources: list[Source] = Field(default_factory=list)
