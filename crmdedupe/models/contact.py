"""Pydantic models for CRM contact records."""

from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator


class LeadScoreLabel(str, Enum):
    """Qualitative label attached to a numeric lead score."""
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"


class LifecycleStatus(str, Enum):
    """Where a contact sits in the sales lifecycle."""
    SUBSCRIBER = "subscriber"
    LEAD = "lead"
    MARKETING_QUALIFIED = "marketing_qualified"
    SALES_QUALIFIED = "sales_qualified"
    OPPORTUNITY = "opportunity"
    CUSTOMER = "customer"
    EVANGELIST = "evangelist"
    CHURNED = "churned"
    OTHER = "other"


# Scalar fields a merge may copy from a duplicate onto an empty primary.
FILLABLE_FIELDS = (
    "email",
    "phone",
    "avatar_url",
    "company_id",
    "job_title",
    "lead_source",
    "owner_agent_id",
    "notes",
    "last_contacted_at",
)


class Contact(BaseModel):
    """A contact record as held in the in-memory snapshot.

    Instances are immutable; use ``with_patch`` to derive an updated copy.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    company_id: Optional[str] = None
    job_title: Optional[str] = None
    lifecycle_status: LifecycleStatus = LifecycleStatus.LEAD
    lead_source: Optional[str] = None
    owner_agent_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    lead_score: Union[int, float] = 0
    lead_score_label: LeadScoreLabel = LeadScoreLabel.COLD
    lead_score_updated_at: Optional[datetime] = None
    last_contacted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id")
    def validate_id(cls, v):
        """Reject blank identifiers."""
        if not str(v).strip():
            raise ValueError("Contact id must not be empty")
        return v

    @field_validator("tags", mode="before")
    def dedupe_tags(cls, v):
        """Tags are a set; keep first-seen order for stable output."""
        if v is None:
            return []
        seen = []
        for tag in v:
            if tag not in seen:
                seen.append(tag)
        return seen

    @field_validator("custom_fields", mode="before")
    def default_custom_fields(cls, v):
        return v or {}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def with_patch(self, patch: Dict[str, Any]) -> "Contact":
        """Return a validated copy of this contact with ``patch`` applied."""
        data = self.model_dump()
        data.update(patch)
        return Contact.model_validate(data)

    def to_record(self) -> Dict[str, Any]:
        """Serialise to a plain dict suitable for a record store."""
        return self.model_dump(mode="json")
