from __future__ import annotations

from typing import Any

from gym_client.config import AppSettings
from gym_client.http import HttpClient
from gym_client.models import ApiRequest, CredentialPair, User


class SessionsApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    def create(self, email: str, password: str) -> tuple[User, CredentialPair]:
        payload = self._http_client.post_json(
            self._settings.sessions_path,
            {"email": email, "password": password},
            authenticated=False,
        )
        user_payload: Any = payload.get("user") if isinstance(payload, dict) else None
        return User.from_payload(user_payload or {}), CredentialPair.from_payload(payload)

    def invalidate(self) -> None:
        if not self._settings.sign_out_path:
            return
        self._http_client.send(ApiRequest("DELETE", self._settings.sign_out_path))
