from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from institute_requests.validators import is_valid_phone, normalize_phone


class RequestStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


InstituteType = Literal["Government", "Private", "Autonomous", "Deemed"]
NaacGrade = Literal["A++", "A+", "A", "B++", "B+", "B", "C"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ContactPerson(CamelModel):
    name: str = Field(min_length=1)
    email: EmailStr
    contact: str = Field(min_length=1)
    alternate_contact: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("contact")
    @classmethod
    def check_contact(cls, v: str) -> str:
        if not is_valid_phone(v):
            raise ValueError("must be a valid 10-digit mobile or 11-digit landline number")
        return normalize_phone(v)

    @field_validator("alternate_contact")
    @classmethod
    def check_alternate_contact(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not is_valid_phone(v):
            raise ValueError("must be a valid 10-digit mobile or 11-digit landline number")
        return normalize_phone(v)


class InstituteRequestCreate(CamelModel):
    """Registration payload as submitted by an institute."""

    aishe_code: str = Field(min_length=1)
    institute_type: InstituteType
    state: str = Field(min_length=1)
    district: str = Field(min_length=1)
    university_name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    email: EmailStr
    head_of_institute: ContactPerson
    modal_officer: ContactPerson
    naac_grading: bool = False
    naac_grade: Optional[NaacGrade] = Field(default=None, validate_default=True)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("naac_grade", mode="before")
    @classmethod
    def blank_grade_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("naac_grade")
    @classmethod
    def check_naac_grade(cls, v, info: ValidationInfo):
        grading = info.data.get("naac_grading", False)
        if grading and not v:
            raise ValueError("required when naacGrading is true")
        return v if grading else None


class ReviewDecision(CamelModel):
    review_comment: Optional[str] = None


class InstituteRequestOut(CamelModel):
    """Stored request as returned to reviewers."""

    id: str
    aishe_code: str
    institute_type: str
    state: str
    district: str
    university_name: str
    address: str
    email: str
    head_of_institute: ContactPerson
    modal_officer: ContactPerson
    naac_grading: bool
    naac_grade: str = ""
    status: RequestStatus
    created_at: datetime
    updated_at: datetime
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_comment: Optional[str] = None
    generated_institute_id: Optional[str] = None
    linked_institute: Optional[str] = None
