from __future__ import annotations

from typing import Any

from gym_client.config import AppSettings
from gym_client.http import HttpClient
from gym_client.models import AvatarImage


class UsersApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    def create(self, name: str, email: str, password: str) -> dict[str, Any]:
        return self._http_client.post_json(
            self._settings.users_path,
            {"name": name, "email": email, "password": password},
            authenticated=False,
        )

    def update(self, patch: dict[str, Any]) -> dict[str, Any]:
        return self._http_client.put_json(self._settings.users_path, patch)

    def upload_avatar(self, upload_name: str, image: AvatarImage) -> dict[str, Any]:
        return self._http_client.patch_multipart(
            self._settings.avatar_path,
            {"avatar": (upload_name, image.content, image.content_type)},
        )

    def profile(self) -> dict[str, Any]:
        return self._http_client.get_json(self._settings.profile_path)
