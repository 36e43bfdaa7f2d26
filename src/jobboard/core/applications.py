from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from jobboard.config import Settings, get_settings
from jobboard.core.access import require_job_owner
from jobboard.core.pipeline import ApplicationPipeline
from jobboard.core.results import Result
from jobboard.crm.service import ZohoService
from jobboard.db.models import Application, Profile
from jobboard.db.repositories import Repository

logger = logging.getLogger(__name__)


class ApplicationService:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        crm: ZohoService | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self._crm = crm

    @property
    def crm(self) -> ZohoService:
        if self._crm is None:
            self._crm = ZohoService(self.session, settings=self.settings)
        return self._crm

    def submit(self, *, job_id: str, applicant_id: str, cover_letter: str) -> Result[Application]:
        if not cover_letter.strip():
            return Result.failure("A cover letter is required", 422)

        job = self.repo.get_job(job_id)
        if job is None:
            return Result.failure("Job not found", 404)
        if job.status != "open":
            return Result.failure("This job is no longer accepting applications", 409)

        # Check-then-insert: two concurrent submissions can both pass this.
        if self.repo.find_application(job_id, applicant_id) is not None:
            return Result.failure("You have already applied for this position.", 409)

        application = self.repo.create_application(
            job_id=job_id,
            applicant_id=applicant_id,
            cover_letter=cover_letter,
        )
        logger.info("Application %s submitted for job %s", application.id, job_id)

        employer = self.repo.get_profile(job.employer_id)
        if employer is not None and employer.zoho_connected:
            synced = self.crm.sync_application(application.id)
            if not synced.ok:
                logger.warning("Zoho sync failed for application %s: %s", application.id, synced.error)
            self.session.refresh(application)

        return Result.success(application)

    def change_status(self, *, application_id: str, employer: Profile, status: str) -> Result[Application]:
        application = self.repo.get_application(application_id)
        if application is None:
            return Result.failure("Application not found", 404)

        owner = require_job_owner(employer, self.repo.get_job(application.job_id))
        if not owner.ok:
            return Result.failure(owner.error or "", owner.status_code)

        pipeline = ApplicationPipeline(status=application.status)  # type: ignore[arg-type]
        if not pipeline.can_move_to(status):
            allowed = ", ".join(pipeline.next_statuses()) or "none"
            return Result.failure(
                f"Cannot move application from '{application.status}' to '{status}' (allowed: {allowed})",
                409,
            )
        if status == application.status:
            return Result.success(application)

        updated = self.repo.set_application_status(application_id, status)
        logger.info("Application %s moved to %s", application_id, status)
        return Result.success(updated)
