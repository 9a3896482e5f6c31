"""
Pydantic models for user profiles and the search / eligibility requests
"""
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .scheme import SearchHit


class UserProfile(BaseModel):
    """Read-only description of the user, used to build retrieval filters"""
    state: Optional[str] = Field(None, description="State of residence")
    gender: Optional[str] = Field(None, description="Gender")
    caste: Optional[str] = Field(None, description="Caste category (General, OBC, SC, ST)")
    social_category: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("social_category", "socialCategory"),
        description="Alternative name for the caste category"
    )
    age: Optional[int] = Field(None, ge=0, le=150)
    occupation: Optional[str] = None
    district: Optional[str] = None
    land_holding_acres: Optional[float] = Field(None, ge=0)
    crop_type: Optional[str] = None
    income: Optional[float] = Field(None, ge=0)

    @field_validator('state', 'gender', 'caste', 'social_category', 'occupation', 'district', 'crop_type')
    @classmethod
    def strip_blank(cls, v):
        if v is None:
            return v
        v = str(v).strip()
        return v or None

    @property
    def category(self) -> Optional[str]:
        """Caste axis value, whichever of the two names the caller used"""
        return self.caste or self.social_category

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        json_schema_extra={
            "example": {
                "state": "Maharashtra",
                "gender": "Female",
                "caste": "OBC",
                "occupation": "Farmer",
                "land_holding_acres": 2.5
            }
        }
    )


class SearchRequest(BaseModel):
    """Semantic search over ingested schemes"""
    query: Optional[str] = Field(None, description="Natural language search query")
    user_profile: Optional[UserProfile] = Field(
        None, validation_alias=AliasChoices("userProfile", "user_profile")
    )
    top_k: Optional[int] = Field(None, ge=1, le=50)


class SearchResponse(BaseModel):
    success: bool = True
    count: int
    data: List[SearchHit]


class JudgeRequest(BaseModel):
    """Strict eligibility check of one profile against one scheme"""
    scheme_id: Optional[str] = Field(None, validation_alias=AliasChoices("schemeId", "scheme_id"))
    user_profile: Optional[UserProfile] = Field(
        None, validation_alias=AliasChoices("userProfile", "user_profile")
    )


class JudgeResponse(BaseModel):
    success: bool = True
    scheme_id: str
    verdict: str = Field(..., description="Literal text returned by the reasoning model")


class RecommendRequest(BaseModel):
    user_profile: Optional[UserProfile] = Field(
        None, validation_alias=AliasChoices("userProfile", "user_profile")
    )


class ChatRequest(BaseModel):
    query: Optional[str] = None
    user_profile: Optional[UserProfile] = Field(
        None, validation_alias=AliasChoices("userProfile", "user_profile")
    )


class ChatResponse(BaseModel):
    success: bool = True
    answer: str
    sources: List[SearchHit] = Field(default_factory=list)


class ExtractProfileRequest(BaseModel):
    spoken_text: Optional[str] = Field(None, validation_alias=AliasChoices("spokenText", "spoken_text"))


class MetricsResponse(BaseModel):
    success: bool = True
    schemes_analyzed: int = 0
    eligibility_checks_performed: int = 0
    average_response_time_seconds: str = "0s"
