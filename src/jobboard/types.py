from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ProfileRole = Literal["applicant", "employer"]
ApplicationStatus = Literal["new", "reviewing", "shortlisted", "interview", "offer", "hired", "rejected"]
ProfileSection = Literal["basic", "contact", "education", "professional"]

SUBSCRIPTION_EVENT_TYPES = frozenset(
    {
        "checkout.session.completed",
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    }
)


class _ClosedPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class BasicInfoPatch(_ClosedPatch):
    full_name: str | None = None
    title: str | None = None
    bio: str | None = None
    avatar_url: str | None = None


class ContactInfoPatch(_ClosedPatch):
    location: str | None = None
    phone_number: str | None = None
    website: str | None = None


class EducationInfoPatch(_ClosedPatch):
    university: str | None = None
    field_of_study: str | None = None
    graduation_year: int | None = None
    student_status: str | None = None

    @field_validator("graduation_year")
    @classmethod
    def validate_year(cls, value: int | None) -> int | None:
        if value is not None and not 1900 <= value <= 2100:
            raise ValueError("graduation_year must be between 1900 and 2100")
        return value


class ProfessionalInfoPatch(_ClosedPatch):
    linkedin_url: str | None = None
    github_url: str | None = None
    cv_url: str | None = None


class RolePatch(_ClosedPatch):
    role: ProfileRole


ProfilePatch = BasicInfoPatch | ContactInfoPatch | EducationInfoPatch | ProfessionalInfoPatch | RolePatch

PATCH_FOR_SECTION: dict[str, type[_ClosedPatch]] = {
    "basic": BasicInfoPatch,
    "contact": ContactInfoPatch,
    "education": EducationInfoPatch,
    "professional": ProfessionalInfoPatch,
}


class JobFilters(BaseModel):
    q: str = ""
    location: str = ""
    job_type: str = ""
    visa_sponsorship: bool | None = None
    limit: int = 50


class StripeEventData(BaseModel):
    object: dict[str, Any] = Field(default_factory=dict)


class StripeEvent(BaseModel):
    id: str = ""
    type: str
    created: int = 0
    data: StripeEventData = Field(default_factory=StripeEventData)

    @property
    def payload(self) -> dict[str, Any]:
        return self.data.object


class ZohoTokenSet(BaseModel):
    access_token: str
    refresh_token: str = ""
    expires_in: int = 3600


class ZohoLead(BaseModel):
    Last_Name: str
    First_Name: str = ""
    Email: str = ""
    Phone: str = ""
    Lead_Source: str
    Company: str
    Description: str = ""
