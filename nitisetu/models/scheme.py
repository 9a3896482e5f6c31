"""
Pydantic models for schemes and their embedded text chunks
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import re


BenefitsType = Literal["Financial", "Subsidy", "Insurance", "Service"]

OBJECT_ID_PATTERN = r"^[0-9a-fA-F]{24}$"


def get_current_utc_time():
    """Get current UTC time for default values"""
    return datetime.now(timezone.utc)


def _clean_values(values: List[str]) -> List[str]:
    cleaned = []
    for value in values or []:
        value = str(value).strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


class Benefits(BaseModel):
    """What a scheme pays out or provides"""
    type: BenefitsType = Field(default="Financial", description="Kind of benefit")
    max_value_inr: float = Field(default=0, ge=0, description="Maximum benefit value in INR")
    description: str = Field(default="", description="Free-text description of the benefit")


class SchemeFilters(BaseModel):
    """Demographic allow-lists; an empty list means no restriction on that axis"""
    state: List[str] = Field(default_factory=list)
    gender: List[str] = Field(default_factory=list)
    caste: List[str] = Field(default_factory=list)

    @field_validator('state', 'gender', 'caste', mode='before')
    @classmethod
    def normalize_values(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(',')
        return _clean_values(v)


class Chunk(BaseModel):
    """One retrievable passage of a scheme document"""
    content: str = Field(..., min_length=1, description="Passage text")
    vector: List[float] = Field(..., min_length=1, description="Embedding of the passage")
    source_page: int = Field(default=1, ge=1, description="Best-effort page number in the source PDF")

    model_config = ConfigDict(frozen=True)


class Scheme(BaseModel):
    """Scheme document as stored: metadata plus its owned chunks"""
    id: Optional[str] = Field(default=None, alias="_id", pattern=OBJECT_ID_PATTERN)
    name: str = Field(..., description="Human-readable scheme title")
    benefits: Benefits = Field(default_factory=Benefits)
    required_documents: List[str] = Field(default_factory=list)
    filters: SchemeFilters = Field(default_factory=SchemeFilters)
    original_source_ref: Optional[str] = Field(None, description="Reference to the ingested source file")
    text_chunks: List[Chunk] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=get_current_utc_time)
    updated_at: datetime = Field(default_factory=get_current_utc_time)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Scheme name must not be empty")
        return v.strip()

    @field_validator('id', mode='before')
    @classmethod
    def validate_object_id(cls, v):
        if v is None:
            return v
        v = str(v)
        if not re.match(OBJECT_ID_PATTERN, v):
            raise ValueError("Invalid ObjectId format")
        return v

    @field_validator('required_documents', mode='before')
    @classmethod
    def normalize_documents(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(',')
        return _clean_values(v)

    @property
    def chunk_count(self) -> int:
        return len(self.text_chunks)

    def summary(self) -> "SchemeSummary":
        return SchemeSummary(
            id=self.id,
            name=self.name,
            benefits=self.benefits,
            required_documents=self.required_documents,
            filters=self.filters,
            original_source_ref=self.original_source_ref,
            chunk_count=self.chunk_count,
            created_at=self.created_at,
        )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "name": "PM Awas Yojana",
                "benefits": {"type": "Financial", "max_value_inr": 250000, "description": "Housing assistance"},
                "required_documents": ["Aadhaar Card", "Income Certificate"],
                "filters": {"state": ["Pan-India"], "gender": ["All"], "caste": ["All"]},
                "original_source_ref": "uploads/pm_awas_yojana.pdf"
            }
        }
    )


class SchemeSummary(BaseModel):
    """Scheme metadata without chunk bodies or vectors"""
    id: str
    name: str
    benefits: Benefits
    required_documents: List[str] = Field(default_factory=list)
    filters: SchemeFilters = Field(default_factory=SchemeFilters)
    original_source_ref: Optional[str] = None
    chunk_count: int = 0
    created_at: Optional[datetime] = None


class IngestResult(BaseModel):
    """Outcome of ingesting one document"""
    id: str
    name: str
    chunks_processed: int = Field(..., ge=0)
    warnings: List[str] = Field(default_factory=list)


class SearchHit(BaseModel):
    """One ranked search result"""
    id: str
    name: str
    benefits: Benefits
    snippet: str = Field(..., description="Best-matching passage of the scheme")
    source_page: int = 1
    score: float = Field(..., ge=0, description="Similarity score (0 to 1)")
