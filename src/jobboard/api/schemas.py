from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from jobboard.types import ApplicationStatus, ProfileRole


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str
    title: str
    bio: str
    avatar_url: str
    location: str
    phone_number: str
    website: str
    linkedin_url: str
    github_url: str
    university: str
    field_of_study: str
    graduation_year: int | None
    student_status: str
    cv_url: str
    role: str
    subscription_status: str | None
    zoho_connected: bool


class SubscriptionStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: str
    subscription_status: str | None
    subscription_id: str | None


class SettingsRequest(BaseModel):
    role: ProfileRole


class JobRequest(BaseModel):
    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    location: str = Field(min_length=1)
    job_type: str = Field(min_length=1)
    description: str = Field(min_length=1)
    requirements: str = ""
    salary_range: str = ""
    visa_sponsorship: bool = False


class JobUpdateRequest(JobRequest):
    status: str = "open"


class JobResponse(JobRequest):
    model_config = ConfigDict(from_attributes=True)

    id: str
    employer_id: str
    status: str


class ApplicationCreateRequest(BaseModel):
    cover_letter: str


class ApplicationStatusRequest(BaseModel):
    status: ApplicationStatus


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    applicant_id: str
    cover_letter: str
    status: str
    zoho_synced: bool


class JobApplicationRow(ApplicationResponse):
    applicant_name: str
    applicant_location: str
    next_statuses: list[str]


class MyApplicationRow(ApplicationResponse):
    job_title: str
    company: str


class ApplicantProfileResponse(BaseModel):
    profile: ProfileResponse
    education: list[EducationResponse]
    experiences: list[ExperienceResponse]
    skills: list[SkillResponse]


class EducationRequest(BaseModel):
    institution: str
    degree: str
    field_of_study: str
    start_date: date
    end_date: date | None = None
    is_current: bool = False


class EducationResponse(EducationRequest):
    model_config = ConfigDict(from_attributes=True)

    id: str


class ExperienceRequest(BaseModel):
    company: str
    title: str
    location: str = ""
    description: str = ""
    start_date: date
    end_date: date | None = None
    is_current: bool = False


class ExperienceResponse(ExperienceRequest):
    model_config = ConfigDict(from_attributes=True)

    id: str


class SkillRequest(BaseModel):
    name: str = Field(min_length=1)


class SkillResponse(SkillRequest):
    model_config = ConfigDict(from_attributes=True)

    id: str


class ConnectionStatusResponse(BaseModel):
    connected: bool
    checked_at: str
    error: str = ""


class CheckoutSessionRequest(BaseModel):
    user_id: str
    return_url: str


class SubscriptionCheckoutRequest(BaseModel):
    user_id: str = ""
    user_email: str = ""
    return_url: str = ""
    coupon_id: str | None = None


class CustomerPortalRequest(BaseModel):
    user_id: str = ""
    return_url: str = ""


class PaymentIntentRequest(BaseModel):
    user_id: str = ""
    idempotency_key: str | None = None


class CheckoutConfirmRequest(BaseModel):
    session_id: str


class ZohoAuthRequest(BaseModel):
    redirectUrl: str = ""


class ZohoCallbackRequest(BaseModel):
    code: str = ""
    redirectUrl: str = ""
    userId: str = ""


class ZohoDisconnectRequest(BaseModel):
    userId: str = ""


class SyncApplicationRequest(BaseModel):
    applicationId: str = ""


class SyncAllUsersRequest(BaseModel):
    employerId: str = ""


ApplicantProfileResponse.model_rebuild()
