from __future__ import annotations

from urllib.parse import quote

from gym_client.config import AppSettings
from gym_client.errors import ApiHttpError, ErrorKind
from gym_client.http import HttpClient
from gym_client.models import Exercise


class CatalogApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    def list_groups(self) -> list[str]:
        payload = self._http_client.get_json(self._settings.groups_path)
        if not isinstance(payload, list):
            raise ApiHttpError(200, "Malformed group listing", ErrorKind.SERVER_ERROR)
        return [str(group) for group in payload]

    def list_exercises(self, group: str) -> list[Exercise]:
        group = group.strip()
        if not group:
            raise ValueError("Exercise group is required")

        path = f"{self._settings.exercises_path}/bygroup/{quote(group, safe='')}"
        payload = self._http_client.get_json(path)
        if not isinstance(payload, list):
            raise ApiHttpError(200, "Malformed exercise listing", ErrorKind.SERVER_ERROR)
        return [Exercise.from_payload(item) for item in payload]

    def get_exercise(self, exercise_id: str) -> Exercise:
        path = f"{self._settings.exercises_path}/{quote(str(exercise_id), safe='')}"
        return Exercise.from_payload(self._http_client.get_json(path))
