import itertools
import json
import threading
from collections import defaultdict, deque
from urllib.parse import unquote, urlparse

import pytest
import requests
from msal_extensions import FilePersistence

from gym_client.app import build_client
from gym_client.config import AppSettings
from gym_client.credentials import CredentialStore, UserCache

BASE_URL = "http://api.gym.test"

EXERCISES = {
    "costas": [
        {"id": "1", "name": "Remada frontal", "group": "costas", "series": 3, "repetitions": "12"},
        {"id": "2", "name": "Remada curvada", "group": "costas", "series": 3, "repetitions": "10"},
    ],
    "bíceps": [
        {"id": "3", "name": "Rosca direta", "group": "bíceps", "series": 4, "repetitions": "10"},
    ],
}


def make_response(status, body=None, url=BASE_URL):
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.reason = "OK" if status < 400 else "Error"
    response.encoding = "utf-8"
    if body is None:
        response._content = b""
    elif isinstance(body, bytes):
        response._content = body
    elif isinstance(body, str):
        response._content = body.encode("utf-8")
    else:
        response._content = json.dumps(body).encode("utf-8")
    return response


class FakeGymServer:
    """In-memory stand-in for the workout API, including token expiry and renewal."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self.users = {
            "ana@gym.com": {
                "id": "7",
                "name": "Ana",
                "email": "ana@gym.com",
                "password": "secret1",
                "avatar": None,
            }
        }
        self.valid_access = set()
        self.valid_refresh = set()
        self.calls = []
        self.refresh_calls = 0
        self.refresh_gate = None
        self.fail_refresh = False
        self.overrides = defaultdict(deque)

    def issue_tokens(self):
        number = next(self._counter)
        access, refresh = f"access-{number}", f"refresh-{number}"
        self.valid_access.add(access)
        self.valid_refresh.add(refresh)
        return access, refresh

    def expire_access_tokens(self):
        with self._lock:
            self.valid_access.clear()

    def override(self, method, path, outcome):
        """Queue a one-shot outcome: an exception to raise or a (status, body) tuple."""
        self.overrides[(method, path)].append(outcome)

    def calls_to(self, method, path):
        return [call for call in self.calls if call["method"] == method and call["path"] == path]

    def handle(self, method, path, token, body, files):
        with self._lock:
            self.calls.append({"method": method, "path": path, "token": token, "body": body, "files": files})
            queued = self.overrides.get((method, path))
            outcome = queued.popleft() if queued else None

        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome

        if method == "POST" and path == "/sessions":
            return self._sign_in(body)
        if method == "POST" and path == "/sessions/refresh-token":
            return self._refresh(body)
        if method == "POST" and path == "/users":
            return self._register(body)

        if token not in self.valid_access:
            return 401, {"status": "error", "message": "token.expired"}

        user = self._user_for(token)
        if method == "PUT" and path == "/users":
            if body.get("password") and body.get("old_password") != user["password"]:
                return 400, {"status": "error", "message": "A senha antiga não confere."}
            user["name"] = body.get("name", user["name"])
            return 200, {}
        if method == "PATCH" and path == "/users/avatar":
            user["avatar"] = f"{user['id']}-{files['avatar'][0]}"
            return 200, self._public(user)
        if method == "GET" and path == "/users/profile":
            return 200, self._public(user)
        if method == "GET" and path == "/groups":
            return 200, list(EXERCISES)
        if method == "GET" and path.startswith("/exercises/bygroup/"):
            group = unquote(path.rsplit("/", 1)[-1])
            return 200, EXERCISES.get(group, [])
        if method == "DELETE" and path == "/sessions":
            return 204, None
        return 404, {"status": "error", "message": "Not found."}

    def _sign_in(self, body):
        user = self.users.get(body.get("email"))
        if not user or user["password"] != body.get("password"):
            return 401, {"status": "error", "message": "E-mail e/ou senha incorreta."}
        access, refresh = self.issue_tokens()
        self._owner = user
        return 200, {"user": self._public(user), "token": access, "refresh_token": refresh}

    def _refresh(self, body):
        with self._lock:
            self.refresh_calls += 1
        if self.refresh_gate is not None:
            self.refresh_gate.wait(timeout=5)
        refresh = body.get("refresh_token")
        if self.fail_refresh or refresh not in self.valid_refresh:
            return 401, {"status": "error", "message": "Refresh token inválido."}
        self.valid_refresh.discard(refresh)
        access, new_refresh = self.issue_tokens()
        return 200, {"token": access, "refresh_token": new_refresh}

    def _register(self, body):
        if body.get("email") in self.users:
            return 400, {"status": "error", "message": "Este e-mail já está em uso."}
        self.users[body["email"]] = {
            "id": str(100 + len(self.users)),
            "name": body["name"],
            "email": body["email"],
            "password": body["password"],
            "avatar": None,
        }
        return 201, None

    def _user_for(self, token):
        return getattr(self, "_owner", None) or next(iter(self.users.values()))

    @staticmethod
    def _public(user):
        return {key: value for key, value in user.items() if key != "password"}


class FakeSession:
    """Minimal ``requests.Session`` double routing every call to a ``FakeGymServer``."""

    def __init__(self, server):
        self.server = server
        self.headers = {}

    def request(self, method, url, headers=None, json=None, data=None, params=None, files=None, timeout=None):
        path = urlparse(url).path
        authorization = (headers or {}).get("Authorization", "")
        token = authorization[len("Bearer "):] if authorization.startswith("Bearer ") else None
        status, body = self.server.handle(method, path, token, json if json is not None else data, files)
        return make_response(status, body, url)


@pytest.fixture
def settings(tmp_path):
    return AppSettings(
        base_url=BASE_URL,
        sign_out_path="/sessions",
        retry_attempts=0,
        credential_store_path=str(tmp_path / "credentials.bin"),
        user_cache_path=str(tmp_path / "user.bin"),
    )


@pytest.fixture
def server():
    return FakeGymServer()


@pytest.fixture
def credential_store(settings):
    return CredentialStore(FilePersistence(settings.credential_store_path))


@pytest.fixture
def user_cache(settings):
    return UserCache(FilePersistence(settings.user_cache_path))


@pytest.fixture
def client(settings, server, credential_store, user_cache):
    gym = build_client(
        settings,
        credential_store=credential_store,
        user_cache=user_cache,
        http_session=FakeSession(server),
    )
    gym.session.restore()
    return gym


@pytest.fixture
def signed_in(client):
    client.session.sign_in("ana@gym.com", "secret1")
    return client
