from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from jobboard.api.deps import get_current_profile, get_db
from jobboard.api.schemas import (
    ApplicantProfileResponse,
    ApplicationCreateRequest,
    ApplicationResponse,
    ApplicationStatusRequest,
    ConnectionStatusResponse,
    EducationRequest,
    EducationResponse,
    ExperienceRequest,
    ExperienceResponse,
    JobApplicationRow,
    JobRequest,
    JobResponse,
    JobUpdateRequest,
    MyApplicationRow,
    ProfileResponse,
    SettingsRequest,
    SkillRequest,
    SkillResponse,
    SubscriptionStateResponse,
)
from jobboard.config import get_settings
from jobboard.core.access import check_role_change, require_employer, require_job_owner
from jobboard.core.applications import ApplicationService
from jobboard.core.connection import refresh_if_stale
from jobboard.core.pipeline import ApplicationPipeline
from jobboard.core.results import Result
from jobboard.db.models import Education, Experience, Profile, Skill
from jobboard.db.repositories import Repository
from jobboard.types import PATCH_FOR_SECTION, JobFilters, ProfileSection, RolePatch

router = APIRouter(prefix="/api", tags=["api"])

PROFILE_CHILDREN = {"education": Education, "experiences": Experience, "skills": Skill}


def _raise_for(result: Result) -> None:
    if not result.ok:
        raise HTTPException(status_code=result.status_code, detail=result.error)


@router.get("/health/db", response_model=ConnectionStatusResponse)
def database_health(
    request: Request,
    force: bool = False,
    db: Session = Depends(get_db),
) -> ConnectionStatusResponse:
    settings = get_settings()
    previous = None if force else getattr(request.app.state, "connection_status", None)
    status = refresh_if_stale(
        previous,
        db,
        max_age=timedelta(seconds=settings.connection_status_max_age_sec),
    )
    request.app.state.connection_status = status
    return ConnectionStatusResponse(
        connected=status.connected,
        checked_at=status.checked_at.isoformat(),
        error=status.error,
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(profile: Profile = Depends(get_current_profile)) -> ProfileResponse:
    return ProfileResponse.model_validate(profile)


@router.patch("/profile/{section}", response_model=ProfileResponse)
def update_profile_section(
    section: ProfileSection,
    payload: dict,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    try:
        patch = PATCH_FOR_SECTION[section].model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc

    updated = Repository(db).apply_profile_patch(profile.id, patch)
    return ProfileResponse.model_validate(updated)


@router.get("/profile/subscription", response_model=SubscriptionStateResponse)
def get_subscription_state(profile: Profile = Depends(get_current_profile)) -> SubscriptionStateResponse:
    return SubscriptionStateResponse.model_validate(profile)


@router.put("/settings", response_model=ProfileResponse)
def save_settings(
    payload: SettingsRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    _raise_for(check_role_change(profile, payload.role))
    updated = Repository(db).apply_profile_patch(profile.id, RolePatch(role=payload.role))
    return ProfileResponse.model_validate(updated)


@router.get("/profile/education", response_model=list[EducationResponse])
def list_education(profile: Profile = Depends(get_current_profile), db: Session = Depends(get_db)) -> list:
    return [EducationResponse.model_validate(row) for row in Repository(db).list_education(profile.id)]


@router.post("/profile/education", response_model=EducationResponse)
def add_education(
    payload: EducationRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> EducationResponse:
    row = Repository(db).add_education(profile.id, **payload.model_dump())
    return EducationResponse.model_validate(row)


@router.get("/profile/experiences", response_model=list[ExperienceResponse])
def list_experiences(profile: Profile = Depends(get_current_profile), db: Session = Depends(get_db)) -> list:
    return [ExperienceResponse.model_validate(row) for row in Repository(db).list_experiences(profile.id)]


@router.post("/profile/experiences", response_model=ExperienceResponse)
def add_experience(
    payload: ExperienceRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> ExperienceResponse:
    row = Repository(db).add_experience(profile.id, payload.model_dump())
    return ExperienceResponse.model_validate(row)


@router.get("/profile/skills", response_model=list[SkillResponse])
def list_skills(profile: Profile = Depends(get_current_profile), db: Session = Depends(get_db)) -> list:
    return [SkillResponse.model_validate(row) for row in Repository(db).list_skills(profile.id)]


@router.post("/profile/skills", response_model=SkillResponse)
def add_skill(
    payload: SkillRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> SkillResponse:
    row = Repository(db).add_skill(profile.id, payload.name.strip())
    return SkillResponse.model_validate(row)


@router.delete("/profile/{kind}/{row_id}")
def delete_profile_child(
    kind: str,
    row_id: str,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> dict:
    model = PROFILE_CHILDREN.get(kind)
    if model is None:
        raise HTTPException(status_code=404, detail="Not found")
    if not Repository(db).delete_profile_child(model, row_id, profile.id):
        raise HTTPException(status_code=404, detail="Not found")
    return {"deleted": row_id}


@router.get("/applicants/{applicant_id}", response_model=ApplicantProfileResponse)
def get_applicant(
    applicant_id: str,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> ApplicantProfileResponse:
    _raise_for(require_employer(profile))
    repo = Repository(db)
    applicant = repo.get_profile(applicant_id)
    if applicant is None:
        raise HTTPException(status_code=404, detail="Applicant not found")
    return ApplicantProfileResponse(
        profile=ProfileResponse.model_validate(applicant),
        education=[EducationResponse.model_validate(row) for row in repo.list_education(applicant_id)],
        experiences=[ExperienceResponse.model_validate(row) for row in repo.list_experiences(applicant_id)],
        skills=[SkillResponse.model_validate(row) for row in repo.list_skills(applicant_id)],
    )


@router.get("/jobs", response_model=list[JobResponse])
def list_jobs(
    q: str = "",
    location: str = "",
    job_type: str = "",
    visa_sponsorship: bool | None = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[JobResponse]:
    filters = JobFilters(q=q, location=location, job_type=job_type, visa_sponsorship=visa_sponsorship, limit=limit)
    return [JobResponse.model_validate(job) for job in Repository(db).list_jobs(filters)]


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str, db: Session = Depends(get_db)) -> JobResponse:
    job = Repository(db).get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.model_validate(job)


@router.post("/jobs", response_model=JobResponse)
def post_job(
    payload: JobRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> JobResponse:
    _raise_for(require_employer(profile))
    job = Repository(db).create_job(profile.id, payload.model_dump())
    return JobResponse.model_validate(job)


@router.put("/jobs/{job_id}", response_model=JobResponse)
def update_job(
    job_id: str,
    payload: JobUpdateRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> JobResponse:
    repo = Repository(db)
    _raise_for(require_job_owner(profile, repo.get_job(job_id)))
    job = repo.update_job(job_id, payload.model_dump())
    return JobResponse.model_validate(job)


@router.get("/employer/jobs", response_model=list[JobResponse])
def list_my_jobs(profile: Profile = Depends(get_current_profile), db: Session = Depends(get_db)) -> list:
    _raise_for(require_employer(profile))
    return [JobResponse.model_validate(job) for job in Repository(db).list_jobs_for_employer(profile.id)]


@router.post("/jobs/{job_id}/apply", response_model=ApplicationResponse)
def apply_to_job(
    job_id: str,
    payload: ApplicationCreateRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> ApplicationResponse:
    result = ApplicationService(db).submit(
        job_id=job_id,
        applicant_id=profile.id,
        cover_letter=payload.cover_letter,
    )
    _raise_for(result)
    return ApplicationResponse.model_validate(result.value)


@router.get("/jobs/{job_id}/applications", response_model=list[JobApplicationRow])
def list_job_applications(
    job_id: str,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> list[JobApplicationRow]:
    repo = Repository(db)
    _raise_for(require_job_owner(profile, repo.get_job(job_id)))
    rows = []
    for application, applicant in repo.list_applications_for_job(job_id):
        rows.append(
            JobApplicationRow(
                **ApplicationResponse.model_validate(application).model_dump(),
                applicant_name=applicant.full_name,
                applicant_location=applicant.location,
                next_statuses=ApplicationPipeline(status=application.status).next_statuses(),  # type: ignore[arg-type]
            )
        )
    return rows


@router.get("/applications", response_model=list[MyApplicationRow])
def list_my_applications(profile: Profile = Depends(get_current_profile), db: Session = Depends(get_db)) -> list:
    return [
        MyApplicationRow(
            **ApplicationResponse.model_validate(application).model_dump(),
            job_title=job.title,
            company=job.company,
        )
        for application, job in Repository(db).list_applications_for_applicant(profile.id)
    ]


@router.patch("/applications/{application_id}/status", response_model=ApplicationResponse)
def change_application_status(
    application_id: str,
    payload: ApplicationStatusRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> ApplicationResponse:
    result = ApplicationService(db).change_status(
        application_id=application_id,
        employer=profile,
        status=payload.status,
    )
    _raise_for(result)
    return ApplicationResponse.model_validate(result.value)
