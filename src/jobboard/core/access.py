from __future__ import annotations

from jobboard.core.results import Result
from jobboard.db.models import Job, Profile

ACTIVE_STATUS = "active"


def can_select_role(profile: Profile, role: str) -> bool:
    if role == "applicant":
        return True
    if role == "employer":
        return profile.subscription_status == ACTIVE_STATUS
    return False


def check_role_change(profile: Profile, role: str) -> Result[str]:
    if can_select_role(profile, role):
        return Result.success(role)
    if role == "employer":
        return Result.failure("An active employer subscription is required to switch to the employer role", 403)
    return Result.failure(f"unsupported role '{role}'", 400)


def require_employer(profile: Profile | None) -> Result[Profile]:
    if profile is None:
        return Result.failure("Profile not found", 404)
    if profile.role != "employer":
        return Result.failure("Employer role required", 403)
    return Result.success(profile)


def require_job_owner(profile: Profile | None, job: Job | None) -> Result[Job]:
    employer = require_employer(profile)
    if not employer.ok:
        return Result.failure(employer.error or "", employer.status_code)
    if job is None:
        return Result.failure("Job not found", 404)
    if job.employer_id != profile.id:  # type: ignore[union-attr]
        return Result.failure("Only the employer who posted this job can manage it", 403)
    return Result.success(job)
