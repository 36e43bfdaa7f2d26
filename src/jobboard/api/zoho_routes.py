from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jobboard.api.deps import get_current_user_id, get_db, get_zoho_client
from jobboard.api.schemas import (
    SyncAllUsersRequest,
    SyncApplicationRequest,
    ZohoAuthRequest,
    ZohoCallbackRequest,
    ZohoDisconnectRequest,
)
from jobboard.core.access import require_job_owner
from jobboard.crm.service import ZohoService
from jobboard.crm.zoho import ZohoClient
from jobboard.db.repositories import Repository

router = APIRouter(prefix="/functions", tags=["zoho"])


def _failure(message: str | None, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "message": message or "Request failed"}, status_code=status_code)


@router.post("/zoho-auth")
def zoho_auth(
    payload: ZohoAuthRequest,
    _caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: ZohoClient = Depends(get_zoho_client),
) -> JSONResponse:
    result = ZohoService(db, client=client).authorization_url(payload.redirectUrl)
    if not result.ok:
        return _failure(result.error, result.status_code)
    return JSONResponse({"authUrl": result.value})


@router.post("/zoho-callback")
def zoho_callback(
    payload: ZohoCallbackRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: ZohoClient = Depends(get_zoho_client),
) -> JSONResponse:
    if payload.userId and payload.userId != caller_id:
        return _failure("Cannot connect Zoho for another user", 403)
    result = ZohoService(db, client=client).connect(
        code=payload.code,
        redirect_url=payload.redirectUrl,
        user_id=payload.userId,
    )
    if not result.ok:
        return _failure(result.error, result.status_code)
    return JSONResponse({"success": True})


@router.post("/zoho-disconnect")
def zoho_disconnect(
    payload: ZohoDisconnectRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: ZohoClient = Depends(get_zoho_client),
) -> JSONResponse:
    if payload.userId and payload.userId != caller_id:
        return _failure("Cannot disconnect Zoho for another user", 403)
    result = ZohoService(db, client=client).disconnect(payload.userId)
    if not result.ok:
        return _failure(result.error, result.status_code)
    return JSONResponse({"success": True, "message": "Successfully disconnected from Zoho CRM"})


@router.post("/sync-job-application")
def sync_job_application(
    payload: SyncApplicationRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: ZohoClient = Depends(get_zoho_client),
) -> JSONResponse:
    repo = Repository(db)
    application = repo.get_application(payload.applicationId) if payload.applicationId else None
    if application is not None:
        caller = repo.get_profile(caller_id)
        owner = require_job_owner(caller, repo.get_job(application.job_id)) if caller else None
        if owner is None or not owner.ok:
            return _failure("Only the job's employer can sync this application", 403)

    result = ZohoService(db, client=client).sync_application(payload.applicationId)
    if not result.ok:
        return _failure(result.error, result.status_code)
    return JSONResponse(result.value)


@router.post("/sync-all-users-to-zoho")
def sync_all_users_to_zoho(
    payload: SyncAllUsersRequest,
    caller_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: ZohoClient = Depends(get_zoho_client),
) -> JSONResponse:
    if payload.employerId and payload.employerId != caller_id:
        return _failure("Cannot sync on behalf of another employer", 403)
    result = ZohoService(db, client=client).sync_all_applicants(payload.employerId)
    if not result.ok:
        return _failure(result.error, result.status_code)
    return JSONResponse(result.value)
