from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import requests
from sqlalchemy.orm import Session

from jobboard.config import Settings, get_settings
from jobboard.core.results import Result
from jobboard.crm.zoho import ZohoAPIError, ZohoClient
from jobboard.db.base import as_utc
from jobboard.db.models import Application, Job, Profile
from jobboard.db.repositories import Repository
from jobboard.types import ZohoLead

logger = logging.getLogger(__name__)

NOT_CONNECTED = "Employer not connected to Zoho CRM"


def applicant_lead(applicant: Profile, *, source: str, description: str, company: str = "Job Applicant") -> ZohoLead:
    full_name = applicant.full_name.strip()
    return ZohoLead(
        Last_Name=full_name or "Job Applicant",
        First_Name=full_name.split(" ")[0] if full_name else "",
        Email=applicant.email,
        Phone=applicant.phone_number,
        Lead_Source=source,
        Company=company,
        Description=description,
    )


def application_lead(application: Application, applicant: Profile, job: Job) -> ZohoLead:
    cover_letter = application.cover_letter or "No cover letter provided"
    return applicant_lead(
        applicant,
        source="Job Application",
        description=f"Applied for: {job.title} at {job.company}\n\nCover Letter:\n{cover_letter}",
    )


def profile_import_lead(applicant: Profile) -> ZohoLead:
    return applicant_lead(
        applicant,
        source="Job Platform Import",
        company=applicant.university or "Job Applicant",
        description=(
            "Imported applicant profile\n\n"
            f"University: {applicant.university or 'N/A'}\n"
            f"Field of Study: {applicant.field_of_study or 'N/A'}\n"
            f"Location: {applicant.location or 'N/A'}"
        ),
    )


class ZohoService:
    """CRM OAuth lifecycle and lead sync for one employer at a time.

    Connection states: no credential row (disconnected), a row whose
    ``expires_at`` is in the future (connected) or in the past (expired).
    Expired tokens are refreshed lazily by whichever sync call notices first.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        client: ZohoClient | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.client = client or ZohoClient(self.settings)
        self.clock = clock or (lambda: datetime.now(UTC))
        self.sleep = sleep

    def authorization_url(self, redirect_url: str) -> Result[str]:
        if not self.settings.zoho_client_id:
            return Result.failure("ZOHO_CLIENT_ID environment variable is not set", 400)
        if not redirect_url:
            return Result.failure("Redirect URL is required", 400)
        return Result.success(self.client.authorization_url(redirect_url))

    def connect(self, *, code: str, redirect_url: str, user_id: str) -> Result[None]:
        if not self.settings.zoho_enabled:
            return Result.failure("ZOHO credentials are not set", 400)
        if not code or not redirect_url or not user_id:
            return Result.failure("Missing required parameters", 400)
        if self.repo.get_profile(user_id) is None:
            return Result.failure("Profile not found", 404)

        try:
            tokens = self.client.exchange_code(code=code, redirect_url=redirect_url)
        except (ZohoAPIError, requests.RequestException) as exc:
            logger.error("Error exchanging Zoho authorization code for user %s: %s", user_id, exc)
            return Result.failure(str(exc) or "Failed to exchange authorization code", 400)

        self.repo.upsert_zoho_credentials(
            user_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=self.clock() + timedelta(seconds=tokens.expires_in),
        )
        self.repo.set_zoho_connected(user_id, True)
        logger.info("Stored Zoho credentials for user %s", user_id)
        return Result.success()

    def disconnect(self, user_id: str) -> Result[None]:
        if not user_id:
            return Result.failure("User ID is required", 400)

        credentials = self.repo.get_zoho_credentials(user_id)
        if credentials is not None and credentials.access_token:
            try:
                self.client.revoke_token(credentials.access_token)
                logger.info("Revoked Zoho access token for user %s", user_id)
            except (ZohoAPIError, requests.RequestException) as exc:
                logger.error("Error revoking Zoho token for user %s: %s", user_id, exc)

        self.repo.delete_zoho_credentials(user_id)
        if self.repo.get_profile(user_id) is not None:
            self.repo.set_zoho_connected(user_id, False)
        logger.info("Deleted Zoho credentials for user %s", user_id)
        return Result.success()

    def ensure_access_token(self, user_id: str) -> Result[str]:
        credentials = self.repo.get_zoho_credentials(user_id)
        if credentials is None or not credentials.access_token:
            return Result.failure(NOT_CONNECTED, 400)

        now = self.clock()
        if as_utc(credentials.expires_at) > now:
            return Result.success(credentials.access_token)

        logger.info("Refreshing Zoho access token for user %s", user_id)
        try:
            tokens = self.client.refresh_access_token(credentials.refresh_token)
        except (ZohoAPIError, requests.RequestException) as exc:
            logger.error("Zoho token refresh failed for user %s: %s", user_id, exc)
            return Result.failure("Failed to refresh Zoho access token", 400)

        updated = self.repo.update_zoho_access_token(
            user_id,
            access_token=tokens.access_token,
            expires_at=now + timedelta(seconds=tokens.expires_in),
        )
        return Result.success(updated.access_token)

    def sync_application(self, application_id: str) -> Result[dict[str, Any]]:
        if not application_id:
            return Result.failure("Application ID is required", 400)

        application = self.repo.get_application(application_id)
        if application is None:
            return Result.failure("Application not found", 404)
        job = self.repo.get_job(application.job_id)
        applicant = self.repo.get_profile(application.applicant_id)
        if job is None or applicant is None:
            return Result.failure("Application not found", 404)

        token = self.ensure_access_token(job.employer_id)
        if not token.ok:
            return Result.failure(token.error or NOT_CONNECTED, token.status_code)

        try:
            payload = self.client.create_leads(token.unwrap(), [application_lead(application, applicant, job)])
        except (ZohoAPIError, requests.RequestException) as exc:
            logger.error("Error syncing application %s to Zoho: %s", application_id, exc)
            return Result.failure("Failed to create lead in Zoho CRM", 502)

        self.repo.mark_application_synced(application_id)
        logger.info("Created Zoho lead for application %s", application_id)
        return Result.success({"success": True, "zohoData": payload})

    def sync_all_applicants(self, employer_id: str) -> Result[dict[str, Any]]:
        if not employer_id:
            return Result.failure("Employer ID is required", 400)

        token = self.ensure_access_token(employer_id)
        if not token.ok:
            return Result.failure(token.error or NOT_CONNECTED, token.status_code)
        access_token = token.unwrap()

        applicants = self.repo.list_profiles_by_role("applicant")
        if not applicants:
            return Result.success({"success": True, "message": "No applicants found to sync", "count": 0})

        leads = [profile_import_lead(applicant) for applicant in applicants]
        batch_size = self.settings.zoho_batch_size
        results: list[dict[str, Any]] = []
        # Earlier batches stay in the CRM when a later one fails.
        for start in range(0, len(leads), batch_size):
            batch = leads[start : start + batch_size]
            try:
                results.append(self.client.create_leads(access_token, batch))
            except (ZohoAPIError, requests.RequestException) as exc:
                logger.error("Zoho batch starting at %s failed: %s", start, exc)
                return Result.failure(f"Failed to create leads in Zoho CRM: {exc}", 502)
            if start + batch_size < len(leads):
                self.sleep(self.settings.zoho_batch_delay_sec)

        message = f"Successfully synced {len(leads)} applicants to Zoho CRM"
        logger.info(message)
        return Result.success({"success": True, "message": message, "count": len(leads), "results": results})
