from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import requests

from jobboard.config import Settings
from jobboard.types import ZohoLead, ZohoTokenSet

logger = logging.getLogger(__name__)


class ZohoAPIError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ZohoClient:
    def __init__(self, settings: Settings, http: requests.Session | None = None):
        self.settings = settings
        self.http = http or requests.Session()

    @property
    def token_url(self) -> str:
        return f"{self.settings.zoho_accounts_url.rstrip('/')}/oauth/v2/token"

    def authorization_url(self, redirect_url: str) -> str:
        query = urlencode(
            {
                "scope": self.settings.zoho_scope,
                "client_id": self.settings.zoho_client_id,
                "response_type": "code",
                "access_type": "offline",
                "redirect_uri": redirect_url,
            }
        )
        return f"{self.settings.zoho_accounts_url.rstrip('/')}/oauth/v2/auth?{query}"

    def exchange_code(self, *, code: str, redirect_url: str) -> ZohoTokenSet:
        data = self._post_token(
            {
                "grant_type": "authorization_code",
                "client_id": self.settings.zoho_client_id,
                "client_secret": self.settings.zoho_client_secret,
                "code": code,
                "redirect_uri": redirect_url,
            },
            failure="Failed to exchange authorization code",
        )
        return ZohoTokenSet.model_validate(data)

    def refresh_access_token(self, refresh_token: str) -> ZohoTokenSet:
        data = self._post_token(
            {
                "grant_type": "refresh_token",
                "client_id": self.settings.zoho_client_id,
                "client_secret": self.settings.zoho_client_secret,
                "refresh_token": refresh_token,
            },
            failure="Failed to refresh Zoho access token",
        )
        return ZohoTokenSet.model_validate(data)

    def revoke_token(self, token: str) -> None:
        response = self.http.post(
            f"{self.token_url}/revoke",
            data={"token": token},
            timeout=self.settings.zoho_timeout_sec,
        )
        if not response.ok:
            raise ZohoAPIError("Failed to revoke Zoho token", status_code=response.status_code)

    def create_leads(self, access_token: str, leads: list[ZohoLead]) -> dict[str, Any]:
        response = self.http.post(
            f"{self.settings.zoho_api_url.rstrip('/')}/crm/v2/Leads",
            json={"data": [lead.model_dump() for lead in leads]},
            headers={"Authorization": f"Zoho-oauthtoken {access_token}"},
            timeout=self.settings.zoho_timeout_sec,
        )
        payload = _json_or_empty(response)
        if not response.ok:
            logger.error("Zoho API error (%s): %s", response.status_code, payload)
            raise ZohoAPIError(
                "Failed to create leads in Zoho CRM",
                status_code=response.status_code,
                payload=payload,
            )
        return payload

    def _post_token(self, form: dict[str, str], *, failure: str) -> dict[str, Any]:
        response = self.http.post(self.token_url, data=form, timeout=self.settings.zoho_timeout_sec)
        payload = _json_or_empty(response)
        # Zoho answers some token errors with HTTP 200 and an "error" field
        if not response.ok or not payload.get("access_token"):
            logger.error("Zoho token endpoint error (%s): %s", response.status_code, payload.get("error"))
            raise ZohoAPIError(
                str(payload.get("error") or failure),
                status_code=response.status_code,
                payload=payload,
            )
        return payload


def _json_or_empty(response: requests.Response) -> dict[str, Any]:
    try:
        value = response.json()
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}
