from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Callable

import requests

from gym_client.config import AppSettings
from gym_client.credentials import CredentialStore
from gym_client.errors import ApiHttpError, ErrorKind
from gym_client.models import ApiRequest

if TYPE_CHECKING:
    from gym_client.renewal import RenewalCoordinator

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 502, 503, 504)


class HttpClient:
    def __init__(
        self,
        settings: AppSettings,
        credential_store: CredentialStore,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._settings = settings
        self._credential_store = credential_store
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        self._sleep = sleep
        self._renewal: RenewalCoordinator | None = None

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    def attach_renewal(self, coordinator: "RenewalCoordinator") -> None:
        self._renewal = coordinator

    def send(self, request: ApiRequest) -> Any:
        token = self._credential_store.access_token() if request.authenticated else None
        try:
            return self.execute(request, token)
        except ApiHttpError as exc:
            if (
                exc.kind is not ErrorKind.AUTH_EXPIRED
                or not request.authenticated
                or self._renewal is None
            ):
                raise
            logger.info("%s %s rejected with an expired credential", request.method, request.path)
            return self._renewal.recover(request, token)

    def execute(self, request: ApiRequest, token: str | None) -> Any:
        url = f"{self._settings.base_url}{request.path}"
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        attempts = self._settings.retry_attempts + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._session.request(
                    request.method,
                    url,
                    headers=headers,
                    json=request.json if request.files is None else None,
                    data=request.json if request.files is not None else None,
                    params=request.params,
                    files=request.files,
                    timeout=self._settings.timeout_seconds,
                )
            except requests.RequestException as exc:
                raise ApiHttpError(
                    status_code=0,
                    message=f"{request.method} {request.path} failed: {exc}",
                    kind=ErrorKind.NETWORK_ERROR,
                ) from exc

            if response.ok:
                return self._decode_success(request, response)

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < attempts:
                logger.info(
                    "%s %s returned HTTP %s, retrying (%s/%s)",
                    request.method,
                    request.path,
                    response.status_code,
                    attempt,
                    attempts - 1,
                )
                self._sleep(1.5 * attempt)
                continue
            raise self._classify(request, response)

        raise ApiHttpError(status_code=0, message="Request failed", kind=ErrorKind.NETWORK_ERROR)

    def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.send(ApiRequest("GET", path, params=params))

    def post_json(self, path: str, payload: dict[str, Any], authenticated: bool = True) -> Any:
        return self.send(ApiRequest("POST", path, json=payload, authenticated=authenticated))

    def put_json(self, path: str, payload: dict[str, Any]) -> Any:
        return self.send(ApiRequest("PUT", path, json=payload))

    def patch_multipart(self, path: str, files: dict[str, tuple[str, bytes, str]]) -> Any:
        return self.send(ApiRequest("PATCH", path, files=files))

    def delete(self, path: str) -> Any:
        return self.send(ApiRequest("DELETE", path))

    @staticmethod
    def _decode_success(request: ApiRequest, response: requests.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.error("%s %s returned a malformed payload", request.method, request.path)
            raise ApiHttpError(
                status_code=response.status_code,
                message=f"Malformed payload from {request.path}",
                kind=ErrorKind.SERVER_ERROR,
            ) from exc

    def _classify(self, request: ApiRequest, response: requests.Response) -> ApiHttpError:
        status_code = response.status_code
        server_message = self._extract_message(response)

        if status_code == 401 and server_message in self._settings.expired_token_codes:
            return ApiHttpError(status_code, server_message, ErrorKind.AUTH_EXPIRED)

        if status_code < 500 and server_message:
            return ApiHttpError(status_code, server_message, ErrorKind.DOMAIN_ERROR)

        logger.error(
            "%s %s failed with HTTP %s: %s",
            request.method,
            request.path,
            status_code,
            response.text[:500],
        )
        return ApiHttpError(
            status_code,
            f"HTTP {status_code}: {response.text[:500]}",
            ErrorKind.SERVER_ERROR,
        )

    @staticmethod
    def _extract_message(response: requests.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
        return None
