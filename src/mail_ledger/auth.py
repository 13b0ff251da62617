"""Google OAuth for a desktop client.

Credentials live in memory for the lifetime of the process only; nothing is
written to disk.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import requests
import structlog
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import AppConfig
from .constants import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    REVOKE_URL,
    SCOPES,
    TOKEN_EXPIRY_MARGIN_SECONDS,
    USERINFO_URL,
)
from .errors import AuthError, NeedsConsentError
from .models import TokenInfo, UserInfo

logger = structlog.get_logger(__name__)

HTTP_TIMEOUT_SECONDS = 10


def token_info_from_credentials(creds: Credentials, now: datetime | None = None) -> TokenInfo:
    """TokenInfo whose expiry is pulled TOKEN_EXPIRY_MARGIN_SECONDS early."""
    now = now or datetime.now(timezone.utc)
    if creds.expiry is not None:
        # google-auth reports a naive UTC expiry.
        expiry = creds.expiry.replace(tzinfo=timezone.utc)
    else:
        expiry = now + timedelta(seconds=DEFAULT_TOKEN_LIFETIME_SECONDS)
    return TokenInfo(
        access_token=creds.token,
        expires_at=expiry - timedelta(seconds=TOKEN_EXPIRY_MARGIN_SECONDS),
    )


class GoogleAuthProvider:
    """Installed-app OAuth flow plus userinfo and revocation endpoints."""

    def __init__(self, config: AppConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.http = session or requests.Session()
        self._credentials: Credentials | None = None

    def _flow(self) -> InstalledAppFlow:
        self.config.require_valid()
        if self.config.client_id:
            client_config = {
                "installed": {
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                    "token_uri": "https://oauth2.googleapis.com/token",
                    "redirect_uris": ["http://localhost"],
                }
            }
            return InstalledAppFlow.from_client_config(client_config, SCOPES)
        return InstalledAppFlow.from_client_secrets_file(str(self.config.credentials_path), SCOPES)

    def request_token(self, force_consent: bool = False) -> TokenInfo:
        """Run the browser consent flow and return a fresh access token."""
        flow = self._flow()
        kwargs = {"prompt": "consent"} if force_consent else {}
        try:
            creds = flow.run_local_server(port=0, access_type="offline", **kwargs)
        except Exception as exc:  # noqa: BLE001
            logger.error("oauth_flow_failed", error=str(exc))
            raise AuthError(f"Google sign-in failed: {exc}") from exc

        self._credentials = creds
        logger.info("oauth_token_obtained")
        return token_info_from_credentials(creds)

    def refresh_token(self) -> TokenInfo:
        """Refresh silently; raises NeedsConsentError when the user must sign in again."""
        creds = self._credentials
        if creds is None or not creds.refresh_token:
            raise NeedsConsentError()
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            logger.warning("token_refresh_rejected", error=str(exc))
            raise NeedsConsentError() from exc
        except TransportError as exc:
            raise AuthError(f"Token refresh failed: {exc}") from exc
        return token_info_from_credentials(creds)

    def fetch_user_info(self, access_token: str) -> UserInfo:
        try:
            resp = self.http.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise AuthError(f"Could not fetch user info: {exc}") from exc
        if resp.status_code != 200:
            raise AuthError(f"Could not fetch user info: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise AuthError("Could not fetch user info: invalid JSON") from exc
        if not isinstance(data, dict) or not data.get("id") or not data.get("email"):
            raise AuthError("Could not fetch user info: unexpected response")
        return UserInfo(id=str(data["id"]), email=str(data["email"]), name=str(data.get("name") or ""))

    def revoke_access(self, access_token: str) -> bool:
        """Revoke *access_token* at Google. Returns False when revocation failed."""
        self._credentials = None
        try:
            resp = self.http.post(
                REVOKE_URL,
                params={"token": access_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            logger.warning("revoke_failed", error=str(exc))
            return False
        return resp.ok
