from __future__ import annotations

from dataclasses import replace
import itertools
import logging
import threading
from typing import Any, Callable

from gym_client.apis import SessionsApi, UsersApi
from gym_client.config import AppSettings
from gym_client.credentials import CredentialStore, CredentialStoreError, UserCache
from gym_client.errors import (
    ApiHttpError,
    ErrorKind,
    GymClientError,
    PayloadTooLargeError,
    PostRegistrationSignInError,
    SessionExpiredError,
)
from gym_client.models import AuthState, AvatarImage, CredentialPair, SessionStatus, User
from gym_client.renewal import RenewalCoordinator

logger = logging.getLogger(__name__)

Listener = Callable[[AuthState], None]

# Fields of a profile patch that are reflected in the locally cached user.
_COMMITTABLE_PROFILE_FIELDS = ("name",)


class SessionContext:
    """Owner of the signed-in user and session status.

    Screens read ``state`` and ``subscribe`` for changes; every mutation of the
    user goes through the server first and is committed here only once the
    server has confirmed it.
    """

    def __init__(
        self,
        settings: AppSettings,
        credential_store: CredentialStore,
        user_cache: UserCache,
        sessions_api: SessionsApi,
        users_api: UsersApi,
        renewal: RenewalCoordinator,
    ):
        self._settings = settings
        self._credential_store = credential_store
        self._user_cache = user_cache
        self._sessions_api = sessions_api
        self._users_api = users_api
        self._lock = threading.RLock()
        self._state = AuthState(status=SessionStatus.UNKNOWN)
        self._listeners: dict[int, Listener] = {}
        self._listener_ids = itertools.count()
        renewal.bind(on_renewed=self._handle_renewed, on_expired=self._handle_session_expired)

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def user(self) -> User | None:
        return self._state.user

    def restore(self) -> AuthState:
        with self._lock:
            if self._state.status is not SessionStatus.UNKNOWN:
                return self._state

            pair = self._credential_store.load()
            user = self._user_cache.load() if pair else None
            if pair and user:
                state = AuthState(SessionStatus.SIGNED_IN, user)
            else:
                if pair:
                    logger.warning("Stored credentials have no cached user; starting signed out")
                    self._clear_storage()
                state = AuthState(SessionStatus.SIGNED_OUT)
            self._swap_state(state)

        logger.info("Session restored as %s", state.status.value)
        self._notify()
        return state

    def sign_in(self, email: str, password: str) -> User:
        user, pair = self._sessions_api.create(email, password)
        self._establish(user, pair)
        logger.info("Signed in user %s", user.id)
        return user

    def sign_up(self, name: str, email: str, password: str) -> User:
        self._users_api.create(name, email, password)
        logger.info("Registered a new account for %s", email)
        try:
            return self.sign_in(email, password)
        except GymClientError as exc:
            raise PostRegistrationSignInError(exc) from exc

    def sign_out(self) -> None:
        if self._credential_store.current() is not None:
            try:
                self._sessions_api.invalidate()
            except GymClientError as exc:
                logger.warning("Server-side sign-out failed; clearing local session anyway: %s", exc)

        changed = False
        try:
            with self._lock:
                try:
                    self._clear_storage(raise_errors=True)
                finally:
                    changed = self._swap_state(AuthState(SessionStatus.SIGNED_OUT))
        finally:
            if changed:
                self._notify()
        logger.info("Signed out")

    def update_profile(self, patch: dict[str, Any]) -> User:
        self._require_user()
        staged = {key: value for key, value in patch.items() if value is not None}
        self._users_api.update(staged)

        changes = {key: staged[key] for key in _COMMITTABLE_PROFILE_FIELDS if key in staged}
        return self._commit(changes)

    def update_avatar(self, image: AvatarImage) -> User:
        user = self._require_user()
        if image.size > self._settings.avatar_max_bytes:
            raise PayloadTooLargeError(image.size, self._settings.avatar_max_bytes)

        upload_name = f"{user.name}.{image.extension}".lower()
        payload = self._users_api.upload_avatar(upload_name, image)

        avatar = payload.get("avatar") if isinstance(payload, dict) else None
        if not avatar:
            raise ApiHttpError(200, "Avatar upload response has no avatar", ErrorKind.SERVER_ERROR)
        return self._commit({"avatar_ref": str(avatar)})

    def refresh_profile(self) -> User:
        self._require_user()
        confirmed = User.from_payload(self._users_api.profile())
        return self._commit(
            {"name": confirmed.name, "email": confirmed.email, "avatar_ref": confirmed.avatar_ref}
        )

    def avatar_url(self) -> str | None:
        user = self._state.user
        if not user or not user.avatar_ref:
            return None
        return f"{self._settings.base_url}/avatar/{user.avatar_ref.lstrip('/')}"

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            key = next(self._listener_ids)
            self._listeners[key] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(key, None)

        return unsubscribe

    def _establish(self, user: User, pair: CredentialPair) -> None:
        with self._lock:
            self._credential_store.save(pair)
            try:
                self._user_cache.save(user)
            except CredentialStoreError:
                logger.warning("Could not cache the signed-in user", exc_info=True)
            changed = self._swap_state(AuthState(SessionStatus.SIGNED_IN, user))
        if changed:
            self._notify()

    def _commit(self, changes: dict[str, Any]) -> User:
        with self._lock:
            current = self._state.user
            if current is None or self._state.status is not SessionStatus.SIGNED_IN:
                raise SessionExpiredError("Signed out before the update could be applied")
            if not changes:
                return current

            updated = replace(current, **changes)
            try:
                self._user_cache.save(updated)
            except CredentialStoreError:
                logger.warning("Could not cache the updated user", exc_info=True)
            changed = self._swap_state(AuthState(SessionStatus.SIGNED_IN, updated))
        if changed:
            self._notify()
        return updated

    def _require_user(self) -> User:
        user = self._state.user
        if user is None or self._state.status is not SessionStatus.SIGNED_IN:
            raise SessionExpiredError("Not signed in")
        return user

    def _handle_renewed(self, pair: CredentialPair) -> None:
        logger.debug("Session continues with renewed credentials")

    def _handle_session_expired(self) -> None:
        with self._lock:
            self._clear_storage()
            changed = self._swap_state(AuthState(SessionStatus.SIGNED_OUT))
        if changed:
            self._notify()

    def _clear_storage(self, raise_errors: bool = False) -> None:
        errors: list[CredentialStoreError] = []
        for slot in (self._credential_store, self._user_cache):
            try:
                slot.clear()
            except CredentialStoreError as exc:
                logger.error("Could not clear %s: %s", slot.location, exc)
                errors.append(exc)
        if errors and raise_errors:
            raise errors[0]

    def _swap_state(self, state: AuthState) -> bool:
        # caller holds self._lock
        if state == self._state:
            return False
        self._state = state
        return True

    def _notify(self) -> None:
        with self._lock:
            state = self._state
            listeners = list(self._listeners.items())

        for key, listener in listeners:
            if key not in self._listeners:
                continue
            try:
                listener(state)
            except Exception:
                logger.exception("Session listener failed")
