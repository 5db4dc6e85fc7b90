from pydantic import BaseModel, Field, EmailStr, field_validator
from datetime import datetime
from typing import Optional, Literal, Any

Answer = Literal["yes", "no", "sometimes"]
HealthGoal = Literal["sleep", "stress", "digestion", "immunity", "energy", "detox"]
PregnancyStatus = Literal["not_pregnant", "pregnant", "nursing", "unsure"]

QUESTION_IDS = (
    "q1_digestive_issues",
    "q2_sleep_quality",
    "q3_medications",
    "q4_processed_foods",
    "q5_energy_crashes",
    "q6_water_intake",
    "q7_toxic_exposure",
    "q8_symptoms",
    "q9_supplements",
    "q10_unresolved_issues",
)

AU_PHONE_PATTERN = r"^(?:\+?61|0)[2-478](?:[ \-]?[0-9]){8}$"

class WellnessAnswers(BaseModel):
    q1_digestive_issues: Answer
    q2_sleep_quality: Answer
    q3_medications: Answer
    q4_processed_foods: Answer
    q5_energy_crashes: Answer
    q6_water_intake: Answer
    q7_toxic_exposure: Answer
    q8_symptoms: Answer
    q9_supplements: Answer
    q10_unresolved_issues: Answer

class QualificationInput(BaseModel):
    current_situation: Literal[
        "just_beginning",
        "managing_chronic",
        "years_no_resolution",
        "generally_healthy",
        "recovering",
    ]
    primary_goal: Literal[
        "resolve_digestive",
        "increase_energy",
        "address_toxic_load",
        "lose_weight",
        "address_specific_symptoms",
        "optimize_health",
    ]
    biggest_obstacle: Literal[
        "dont_know_where_to_start",
        "tried_many_things",
        "conflicting_information",
        "cost_of_care",
        "not_enough_time",
        "dismissed_by_practitioners",
    ]
    preferred_support: Literal[
        "self_guided",
        "one_time_consult",
        "comprehensive_testing",
        "ongoing_support",
        "full_service_partnership",
    ]

class WellnessAssessmentSubmit(WellnessAnswers, QualificationInput):
    name: str = Field(min_length=2, max_length=80)
    email: EmailStr
    phone: Optional[str] = Field(default=None, pattern=AU_PHONE_PATTERN)
    location: Optional[str] = Field(default=None, max_length=120)
    additional_notes: Optional[str] = Field(default=None, max_length=1200)
    utm_source: Optional[str] = Field(default=None, max_length=120)
    utm_medium: Optional[str] = Field(default=None, max_length=120)
    utm_campaign: Optional[str] = Field(default=None, max_length=120)

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator(
        "phone", "location", "additional_notes", "utm_source", "utm_medium", "utm_campaign",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, value):
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None

class InsightFlags(BaseModel):
    gut: Literal["stable", "focus"]
    toxic: Literal["stable", "focus"]
    lifestyle: Literal["stable", "focus"]

class WellnessScoreSummary(BaseModel):
    score: int
    category: Literal["strong", "moderate", "needs_attention"]
    insight_flags: InsightFlags

class InsightCopy(BaseModel):
    title: str
    status: Literal["positive", "attention"]
    summary: str

class CallToAction(BaseModel):
    label: str
    href: str

class NextStepRecommendation(BaseModel):
    title: str
    summary: str
    bullets: list[str]
    primary_cta: CallToAction
    secondary_cta: Optional[CallToAction] = None

class AssessmentResult(WellnessScoreSummary):
    id: int
    name: str
    qualification_level: Literal["high", "medium", "low"]
    recommended_next_step: NextStepRecommendation
    insights: list[InsightCopy]

class AssessmentSubmitted(BaseModel):
    assessment_id: int
    result: AssessmentResult

# Results page action -> tracking column on the assessment
TRACKED_ACTIONS = {
    "view": "result_viewed",
    "cta": "clicked_cta",
    "secondary": "clicked_cta",
    "booking": "booking_made",
}

class TrackAction(BaseModel):
    id: int
    action: Literal["view", "cta", "secondary", "booking"]

# Newsletter

class NewsletterSubscribe(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, min_length=2, max_length=80)
    tags: list[str] = Field(default_factory=list, max_length=10)

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if len(value) > 190:
                raise ValueError("Email is too long")
        return value

    @field_validator("name", mode="before")
    @classmethod
    def blank_name(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value: list[str]) -> list[str]:
        tags = [tag.strip() for tag in value]
        if any(not tag for tag in tags):
            raise ValueError("Tags cannot be blank")
        return tags

class NewsletterSubscribed(BaseModel):
    message: str

# Guided compound intake

class GuidedAssessmentInput(BaseModel):
    primary_concern: str = Field(min_length=10, max_length=500)
    goals: list[HealthGoal] = Field(min_length=1, max_length=3)
    medications: list[str] = Field(default=[], max_length=10)
    allergies: list[str] = Field(default=[], max_length=10)
    pregnancy_status: PregnancyStatus
    sensitivities: list[
        Literal["avoid_bitter", "avoid_alcohol", "sensitive_stimulants", "sensitive_digestive"]
    ] = Field(default=[], max_length=4)
    taste_preferences: list[
        Literal["sweet", "bitter", "floral", "spicy", "earthy"]
    ] = Field(default=[], max_length=5)
    stimulant_sensitivity: Literal["low", "medium", "high"]
    sleep_quality: Literal["rested", "tired", "wired"]
    notes: Optional[str] = Field(default=None, max_length=500)

class SuggestedHerb(BaseModel):
    product_id: Optional[int] = None
    slug: str
    name: str
    start_percentage: float
    min_percentage: float
    max_percentage: float
    notes: Optional[str] = None

class RecommendationWarning(BaseModel):
    code: Literal["MEDICATIONS", "PREGNANCY", "ALLERGY", "ALCOHOL_BASE"]
    message: str

class RecommendationMetadata(BaseModel):
    goals: list[HealthGoal]
    pregnancy_status: PregnancyStatus
    stimulant_sensitivity: Literal["low", "medium", "high"]
    sleep_quality: Literal["rested", "tired", "wired"]
    summary: str

class GuidedRecommendation(BaseModel):
    primary_goal: HealthGoal
    suggested_herbs: list[SuggestedHerb]
    warnings: list[RecommendationWarning]
    metadata: RecommendationMetadata

class GuidedAssessmentRead(BaseModel):
    id: int
    user_id: str
    type: str
    responses: dict[str, Any]
    recommendations: dict[str, Any]
    created_at: datetime
    class Config:
        from_attributes = True
