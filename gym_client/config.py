from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import sys


class ConfigurationError(ValueError):
    pass


DEFAULT_AVATAR_MAX_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class AppSettings:
    base_url: str
    sessions_path: str = "/sessions"
    refresh_path: str = "/sessions/refresh-token"
    users_path: str = "/users"
    avatar_path: str = "/users/avatar"
    profile_path: str = "/users/profile"
    groups_path: str = "/groups"
    exercises_path: str = "/exercises"
    sign_out_path: str = ""
    timeout_seconds: int = 30
    retry_attempts: int = 2
    avatar_max_bytes: int = DEFAULT_AVATAR_MAX_BYTES
    expired_token_codes: tuple[str, ...] = ("token.expired", "token.invalid")
    credential_store_path: str = "gym_credentials.bin"
    user_cache_path: str = "gym_user.bin"
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "AppSettings":
        _load_dotenv_if_present()

        base_url = os.getenv("GYM_BASE_URL", "").strip().rstrip("/")

        raw_codes = os.getenv("GYM_EXPIRED_TOKEN_CODES", "token.expired,token.invalid")
        expired_token_codes = tuple(c.strip() for c in raw_codes.split(",") if c.strip())

        data_dir = os.getenv("GYM_DATA_DIR", "").strip() or os.path.join(
            os.getenv("LOCALAPPDATA", os.getcwd()),
            "GymClient",
        )

        settings = AppSettings(
            base_url=base_url,
            sessions_path=os.getenv("GYM_SESSIONS_PATH", "/sessions").strip(),
            refresh_path=os.getenv("GYM_REFRESH_PATH", "/sessions/refresh-token").strip(),
            users_path=os.getenv("GYM_USERS_PATH", "/users").strip(),
            avatar_path=os.getenv("GYM_AVATAR_PATH", "/users/avatar").strip(),
            profile_path=os.getenv("GYM_PROFILE_PATH", "/users/profile").strip(),
            groups_path=os.getenv("GYM_GROUPS_PATH", "/groups").strip(),
            exercises_path=os.getenv("GYM_EXERCISES_PATH", "/exercises").strip(),
            sign_out_path=os.getenv("GYM_SIGN_OUT_PATH", "").strip(),
            timeout_seconds=_int_env("GYM_TIMEOUT_SECONDS", "30"),
            retry_attempts=_int_env("GYM_RETRY_ATTEMPTS", "2"),
            avatar_max_bytes=_int_env("GYM_AVATAR_MAX_BYTES", str(DEFAULT_AVATAR_MAX_BYTES)),
            expired_token_codes=expired_token_codes,
            credential_store_path=os.path.join(data_dir, "credentials.bin"),
            user_cache_path=os.path.join(data_dir, "user.bin"),
            log_level=os.getenv("GYM_LOG_LEVEL", "INFO").strip().upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if not self.base_url:
            raise ConfigurationError("Missing required settings: GYM_BASE_URL")

        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError("GYM_BASE_URL must be an http(s) URL")

        path_fields = {
            "GYM_SESSIONS_PATH": self.sessions_path,
            "GYM_REFRESH_PATH": self.refresh_path,
            "GYM_USERS_PATH": self.users_path,
            "GYM_AVATAR_PATH": self.avatar_path,
            "GYM_PROFILE_PATH": self.profile_path,
            "GYM_GROUPS_PATH": self.groups_path,
            "GYM_EXERCISES_PATH": self.exercises_path,
        }
        if self.sign_out_path:
            path_fields["GYM_SIGN_OUT_PATH"] = self.sign_out_path
        invalid_paths = [name for name, value in path_fields.items() if not value.startswith("/")]
        if invalid_paths:
            raise ConfigurationError(
                "Endpoint paths must start with '/': " + ", ".join(invalid_paths)
            )

        if self.timeout_seconds <= 0:
            raise ConfigurationError("GYM_TIMEOUT_SECONDS must be greater than 0")

        if self.retry_attempts < 0:
            raise ConfigurationError("GYM_RETRY_ATTEMPTS must be 0 or greater")

        if self.avatar_max_bytes <= 0:
            raise ConfigurationError("GYM_AVATAR_MAX_BYTES must be greater than 0")

        if not self.expired_token_codes:
            raise ConfigurationError("GYM_EXPIRED_TOKEN_CODES must name at least one code")

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level not in valid_levels:
            raise ConfigurationError(
                "GYM_LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
            )


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _load_dotenv_if_present(file_name: str = ".env") -> None:
    for candidate in _candidate_env_files(file_name):
        _load_env_file(candidate)


def _candidate_env_files(file_name: str) -> list[Path]:
    candidates: list[Path] = []

    explicit = os.getenv("GYM_ENV_FILE", "").strip()
    if explicit:
        candidates.append(Path(explicit).expanduser())

    candidates.append(Path.cwd() / file_name)

    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).resolve().parent
        candidates.append(exe_dir / file_name)
    else:
        project_root = Path(__file__).resolve().parent.parent
        candidates.append(project_root / file_name)

    unique_candidates: list[Path] = []
    seen: set[str] = set()
    for path in candidates:
        normalized = str(path.resolve()) if path.exists() else str(path)
        if normalized in seen:
            continue
        seen.add(normalized)
        unique_candidates.append(path)
    return unique_candidates


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return

    try:
        with path.open("r", encoding="utf-8") as env_file:
            for raw_line in env_file:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")

                if key and key not in os.environ:
                    os.environ[key] = value
    except OSError:
        return
