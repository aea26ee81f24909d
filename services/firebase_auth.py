from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials

from core.logging_setup import get_logger
from core.settings import FIREBASE


class FirebaseAuth:
    """Loads Google credentials for the Firestore and Storage REST APIs.

    A service-account key is preferred; otherwise an authorized-user token
    file (as written by ``google-auth``) is used. Interactive sign-in is the
    host application's job.
    """

    def __init__(
        self,
        service_account_path: str | Path = FIREBASE.service_account_path,
        token_path: str | Path | None = None,
        scopes: Iterable[str] = FIREBASE.scopes,
    ):
        self.service_account_path = Path(service_account_path)
        self.token_path = Path(token_path) if token_path else None
        self.scopes = list(scopes)
        self.creds = None
        self.logger = get_logger("auth")

    def ensure_credentials(self) -> bool:
        if self.creds is not None and self.creds.valid:
            return True

        if self.creds is None:
            self.creds = self._load()

        if self.creds is None:
            raise FileNotFoundError(
                f"No credentials found at {self.service_account_path}"
                + (f" or {self.token_path}" if self.token_path else "")
            )

        if not self.creds.valid:
            try:
                self.creds.refresh(Request())
            except RefreshError as exc:
                self.logger.warning("Credential refresh failed: %s", exc)
                self.creds = None
                raise
        return True

    def get_credentials(self):
        self.ensure_credentials()
        return self.creds

    def _load(self):
        if self.service_account_path.exists():
            self.logger.info("Using service account %s", self.service_account_path)
            return service_account.Credentials.from_service_account_file(
                str(self.service_account_path), scopes=self.scopes
            )
        if self.token_path and self.token_path.exists():
            try:
                return Credentials.from_authorized_user_file(str(self.token_path), self.scopes)
            except (ValueError, json.JSONDecodeError) as exc:
                self.logger.warning("Failed to load %s: %s", self.token_path, exc)
        return None


def credentials_from_auth(auth) -> Optional[object]:
    if auth is None:
        return None
    if hasattr(auth, "get_credentials") and callable(auth.get_credentials):
        return auth.get_credentials()
    return getattr(auth, "creds", None) or getattr(auth, "credentials", None)


__all__ = ["FirebaseAuth", "credentials_from_auth"]
