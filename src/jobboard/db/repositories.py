from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from jobboard.db.models import (
    Application,
    Education,
    Experience,
    Job,
    Profile,
    Skill,
    ZohoCredentials,
)
from jobboard.types import JobFilters, ProfilePatch


class Repository:
    def __init__(self, session: Session):
        self.session = session

    # profiles

    def get_profile(self, profile_id: str) -> Profile | None:
        return self.session.get(Profile, profile_id)

    def ensure_profile(self, profile_id: str, email: str = "") -> Profile:
        profile = self.session.get(Profile, profile_id)
        if profile is not None:
            if email and not profile.email:
                profile.email = email
                self.session.commit()
                self.session.refresh(profile)
            return profile

        profile = Profile(id=profile_id, email=email)
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def apply_profile_patch(self, profile_id: str, patch: ProfilePatch) -> Profile:
        profile = self.session.get(Profile, profile_id)
        if not profile:
            raise ValueError(f"profile {profile_id} not found")

        for key, value in patch.changes().items():
            setattr(profile, key, "" if value is None and key != "graduation_year" else value)

        self.session.commit()
        self.session.refresh(profile)
        return profile

    def set_subscription_state(
        self,
        profile_id: str,
        *,
        role: str,
        subscription_status: str | None,
        subscription_id: str | None,
    ) -> Profile:
        profile = self.session.get(Profile, profile_id)
        if not profile:
            raise ValueError(f"profile {profile_id} not found")

        profile.role = role
        profile.subscription_status = subscription_status
        if subscription_id is not None:
            profile.subscription_id = subscription_id

        self.session.commit()
        self.session.refresh(profile)
        return profile

    def set_zoho_connected(self, profile_id: str, connected: bool) -> None:
        profile = self.session.get(Profile, profile_id)
        if not profile:
            raise ValueError(f"profile {profile_id} not found")
        profile.zoho_connected = connected
        self.session.commit()

    def find_profile_by_subscription(self, subscription_id: str) -> Profile | None:
        statement = select(Profile).where(Profile.subscription_id == subscription_id)
        return self.session.scalar(statement)

    def list_profiles_by_role(self, role: str) -> list[Profile]:
        statement = select(Profile).where(Profile.role == role).order_by(Profile.created_at.asc())
        return list(self.session.scalars(statement).all())

    def count_profiles(self) -> int:
        return int(self.session.scalar(select(func.count()).select_from(Profile)) or 0)

    # jobs

    def create_job(self, employer_id: str, values: dict) -> Job:
        job = Job(employer_id=employer_id, **values)
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def get_job(self, job_id: str) -> Job | None:
        return self.session.get(Job, job_id)

    def update_job(self, job_id: str, values: dict) -> Job:
        job = self.session.get(Job, job_id)
        if not job:
            raise ValueError(f"job {job_id} not found")
        for key, value in values.items():
            setattr(job, key, value)
        self.session.commit()
        self.session.refresh(job)
        return job

    def list_jobs(self, filters: JobFilters | None = None) -> list[Job]:
        filters = filters or JobFilters()
        statement = select(Job).where(Job.status == "open")
        if filters.q:
            pattern = f"%{filters.q.strip()}%"
            statement = statement.where(or_(Job.title.ilike(pattern), Job.company.ilike(pattern)))
        if filters.location:
            statement = statement.where(Job.location.ilike(f"%{filters.location.strip()}%"))
        if filters.job_type:
            statement = statement.where(Job.job_type == filters.job_type)
        if filters.visa_sponsorship is not None:
            statement = statement.where(Job.visa_sponsorship == filters.visa_sponsorship)
        statement = statement.order_by(Job.created_at.desc()).limit(filters.limit)
        return list(self.session.scalars(statement).all())

    def list_jobs_for_employer(self, employer_id: str) -> list[Job]:
        statement = select(Job).where(Job.employer_id == employer_id).order_by(Job.created_at.desc())
        return list(self.session.scalars(statement).all())

    # applications

    def find_application(self, job_id: str, applicant_id: str) -> Application | None:
        statement = select(Application).where(
            Application.job_id == job_id,
            Application.applicant_id == applicant_id,
        )
        return self.session.scalars(statement).first()

    def create_application(self, *, job_id: str, applicant_id: str, cover_letter: str) -> Application:
        application = Application(
            job_id=job_id,
            applicant_id=applicant_id,
            cover_letter=cover_letter,
            zoho_synced=False,
        )
        self.session.add(application)
        self.session.commit()
        self.session.refresh(application)
        return application

    def get_application(self, application_id: str) -> Application | None:
        return self.session.get(Application, application_id)

    def count_applications(self, job_id: str, applicant_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(Application)
            .where(Application.job_id == job_id, Application.applicant_id == applicant_id)
        )
        return int(self.session.scalar(statement) or 0)

    def list_applications_for_job(self, job_id: str) -> list[tuple[Application, Profile]]:
        statement = (
            select(Application, Profile)
            .join(Profile, Profile.id == Application.applicant_id)
            .where(Application.job_id == job_id)
            .order_by(Application.created_at.asc())
        )
        return [(row[0], row[1]) for row in self.session.execute(statement).all()]

    def list_applications_for_applicant(self, applicant_id: str) -> list[tuple[Application, Job]]:
        statement = (
            select(Application, Job)
            .join(Job, Job.id == Application.job_id)
            .where(Application.applicant_id == applicant_id)
            .order_by(Application.created_at.desc())
        )
        return [(row[0], row[1]) for row in self.session.execute(statement).all()]

    def set_application_status(self, application_id: str, status: str) -> Application:
        application = self.session.get(Application, application_id)
        if not application:
            raise ValueError(f"application {application_id} not found")
        application.status = status
        self.session.commit()
        self.session.refresh(application)
        return application

    def mark_application_synced(self, application_id: str) -> None:
        application = self.session.get(Application, application_id)
        if not application:
            raise ValueError(f"application {application_id} not found")
        application.zoho_synced = True
        self.session.commit()

    # zoho credentials

    def get_zoho_credentials(self, user_id: str) -> ZohoCredentials | None:
        return self.session.scalar(select(ZohoCredentials).where(ZohoCredentials.user_id == user_id))

    def upsert_zoho_credentials(
        self,
        user_id: str,
        *,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> ZohoCredentials:
        existing = self.get_zoho_credentials(user_id)
        if existing:
            existing.access_token = access_token
            if refresh_token:
                existing.refresh_token = refresh_token
            existing.expires_at = expires_at
            obj = existing
        else:
            obj = ZohoCredentials(
                user_id=user_id,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
            )
            self.session.add(obj)

        self.session.commit()
        self.session.refresh(obj)
        return obj

    def update_zoho_access_token(self, user_id: str, *, access_token: str, expires_at: datetime) -> ZohoCredentials:
        credentials = self.get_zoho_credentials(user_id)
        if not credentials:
            raise ValueError(f"zoho credentials for {user_id} not found")
        credentials.access_token = access_token
        credentials.expires_at = expires_at
        self.session.commit()
        self.session.refresh(credentials)
        return credentials

    def delete_zoho_credentials(self, user_id: str) -> int:
        result = self.session.execute(delete(ZohoCredentials).where(ZohoCredentials.user_id == user_id))
        self.session.commit()
        return int(result.rowcount or 0)

    # profile children

    def list_education(self, profile_id: str) -> list[Education]:
        statement = select(Education).where(Education.profile_id == profile_id).order_by(Education.start_date.desc())
        return list(self.session.scalars(statement).all())

    def add_education(
        self,
        profile_id: str,
        *,
        institution: str,
        degree: str,
        field_of_study: str,
        start_date: date,
        end_date: date | None = None,
        is_current: bool = False,
    ) -> Education:
        row = Education(
            profile_id=profile_id,
            institution=institution,
            degree=degree,
            field_of_study=field_of_study,
            start_date=start_date,
            end_date=end_date,
            is_current=is_current,
        )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def list_experiences(self, profile_id: str) -> list[Experience]:
        statement = (
            select(Experience).where(Experience.profile_id == profile_id).order_by(Experience.start_date.desc())
        )
        return list(self.session.scalars(statement).all())

    def add_experience(self, profile_id: str, values: dict) -> Experience:
        row = Experience(profile_id=profile_id, **values)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def list_skills(self, profile_id: str) -> list[Skill]:
        statement = select(Skill).where(Skill.profile_id == profile_id).order_by(Skill.name.asc())
        return list(self.session.scalars(statement).all())

    def add_skill(self, profile_id: str, name: str) -> Skill:
        row = Skill(profile_id=profile_id, name=name)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def delete_profile_child(self, model: type, row_id: str, profile_id: str) -> bool:
        result = self.session.execute(
            delete(model).where(model.id == row_id, model.profile_id == profile_id)
        )
        self.session.commit()
        return bool(result.rowcount)
