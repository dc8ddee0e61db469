from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from gym_client.errors import ApiHttpError, ErrorKind


def _require(payload: dict[str, Any], key: str, what: str) -> Any:
    value = payload.get(key) if isinstance(payload, dict) else None
    if value is None or value == "":
        raise ApiHttpError(
            status_code=200,
            message=f"Malformed {what} payload: missing '{key}'",
            kind=ErrorKind.SERVER_ERROR,
        )
    return value


@dataclass(frozen=True)
class CredentialPair:
    access_token: str
    refresh_token: str

    def __repr__(self) -> str:
        return "CredentialPair(access_token=***, refresh_token=***)"

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "CredentialPair":
        return CredentialPair(
            access_token=str(_require(payload, "token", "credential")),
            refresh_token=str(_require(payload, "refresh_token", "credential")),
        )

    def to_dict(self) -> dict[str, str]:
        return {"token": self.access_token, "refresh_token": self.refresh_token}


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    avatar_ref: str | None = None

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "User":
        avatar = payload.get("avatar") if isinstance(payload, dict) else None
        return User(
            id=str(_require(payload, "id", "user")),
            name=str(_require(payload, "name", "user")),
            email=str(_require(payload, "email", "user")),
            avatar_ref=str(avatar) if avatar else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar": self.avatar_ref,
        }


class SessionStatus(str, Enum):
    UNKNOWN = "unknown"
    SIGNED_OUT = "signed_out"
    SIGNED_IN = "signed_in"


@dataclass(frozen=True)
class AuthState:
    status: SessionStatus
    user: User | None = None

    @property
    def is_signed_in(self) -> bool:
        return self.status is SessionStatus.SIGNED_IN


@dataclass(frozen=True)
class ApiRequest:
    method: str
    path: str
    json: dict[str, Any] | None = None
    params: dict[str, Any] | None = None
    files: dict[str, tuple[str, bytes, str]] | None = field(default=None, repr=False)
    authenticated: bool = True


@dataclass(frozen=True)
class AvatarImage:
    filename: str
    content: bytes = field(repr=False)
    content_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        if "." not in self.filename:
            return self.content_type.rsplit("/", 1)[-1]
        return self.filename.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class Exercise:
    id: str
    name: str
    group: str
    series: int = 0
    repetitions: str = ""
    demo: str | None = None
    thumb: str | None = None

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "Exercise":
        return Exercise(
            id=str(_require(payload, "id", "exercise")),
            name=str(_require(payload, "name", "exercise")),
            group=str(payload.get("group", "")),
            series=int(payload.get("series") or 0),
            repetitions=str(payload.get("repetitions") or ""),
            demo=payload.get("demo") or None,
            thumb=payload.get("thumb") or None,
        )
