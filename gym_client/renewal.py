from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
import logging
import threading
from typing import Any, Callable

from gym_client.credentials import CredentialStore, CredentialStoreError
from gym_client.errors import SessionExpiredError
from gym_client.http import HttpClient
from gym_client.models import ApiRequest, CredentialPair

logger = logging.getLogger(__name__)


class RenewalState(str, Enum):
    IDLE = "idle"
    RENEWING = "renewing"


@dataclass
class _PendingRequest:
    request: ApiRequest
    outcome: Future = field(default_factory=Future)


class RenewalCoordinator:
    """Single-flight renewal of an expired access token.

    The first request to fail with an expired token runs the renewal exchange on
    its own thread; requests failing while that exchange is in flight join the
    pending set and block on their own future. Once the exchange settles the
    leader replays the pending set in arrival order, or fails all of it with
    ``SessionExpiredError`` after clearing the stored credentials. An outcome
    is written to the store only while the renewed pair is still the stored
    one; otherwise the pending set continues with whatever the store holds.
    """

    def __init__(self, http_client: HttpClient, credential_store: CredentialStore, refresh_path: str):
        self._http_client = http_client
        self._credential_store = credential_store
        self._refresh_path = refresh_path
        self._lock = threading.Lock()
        self._state = RenewalState.IDLE
        self._pending: list[_PendingRequest] = []
        self._on_renewed: list[Callable[[CredentialPair], None]] = []
        self._on_expired: list[Callable[[], None]] = []
        self._exchange_count = 0

    @property
    def state(self) -> RenewalState:
        return self._state

    @property
    def exchange_count(self) -> int:
        return self._exchange_count

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def bind(
        self,
        on_renewed: Callable[[CredentialPair], None] | None = None,
        on_expired: Callable[[], None] | None = None,
    ) -> None:
        if on_renewed is not None:
            self._on_renewed.append(on_renewed)
        if on_expired is not None:
            self._on_expired.append(on_expired)

    def recover(self, request: ApiRequest, failed_token: str | None) -> Any:
        replay_token: str | None = None
        refresh_token: str | None = None
        with self._lock:
            current = self._credential_store.current()
            if current is None:
                raise SessionExpiredError("No credentials available to renew the session")

            if self._state is RenewalState.IDLE and current.access_token != failed_token:
                replay_token = current.access_token
            else:
                entry = _PendingRequest(request)
                self._pending.append(entry)
                if self._state is RenewalState.IDLE:
                    self._state = RenewalState.RENEWING
                    self._exchange_count += 1
                    refresh_token = current.refresh_token

        if replay_token is not None:
            logger.debug("Credentials were renewed meanwhile; replaying %s %s", request.method, request.path)
            return self._http_client.execute(request, replay_token)

        if refresh_token is not None:
            self._renew(refresh_token)

        return entry.outcome.result()

    def _renew(self, refresh_token: str) -> None:
        logger.info("Renewing expired credentials")
        pending: list[_PendingRequest] | None = None
        try:
            pair, error = self._exchange(refresh_token)

            def still_current(stored: CredentialPair | None) -> bool:
                return stored is not None and stored.refresh_token == refresh_token

            # The store may have moved on (sign-in, sign-out) while the exchange
            # was in flight; its outcome then applies to nothing.
            with self._lock:
                applied = False
                if pair is not None:
                    try:
                        applied = self._credential_store.save_if(still_current, pair)
                    except CredentialStoreError as exc:
                        pair, error = None, exc
                if pair is None:
                    applied = self._clear_if(still_current)
                current = self._credential_store.current()
                pending = self._detach()

            if not applied:
                self._resume(pending, current)
            elif pair is not None:
                self._complete(pending, pair)
            else:
                self._expire(pending, error)
        finally:
            if pending is None:
                with self._lock:
                    pending = self._detach()
            self._abandon(pending)

    def _exchange(self, refresh_token: str) -> tuple[CredentialPair | None, Exception | None]:
        try:
            payload = self._http_client.execute(
                ApiRequest(
                    "POST",
                    self._refresh_path,
                    json={"refresh_token": refresh_token},
                    authenticated=False,
                ),
                None,
            )
            return CredentialPair.from_payload(payload), None
        except Exception as exc:
            return None, exc

    def _clear_if(self, still_current: Callable[[CredentialPair | None], bool]) -> bool:
        try:
            return self._credential_store.clear_if(still_current)
        except CredentialStoreError:
            logger.exception("Could not clear stored credentials after a failed renewal")
            return True

    def _complete(self, pending: list[_PendingRequest], pair: CredentialPair) -> None:
        logger.info("Credentials renewed; replaying %s pending request(s)", len(pending))
        for listener in list(self._on_renewed):
            try:
                listener(pair)
            except Exception:
                logger.exception("Renewal listener failed")

        for entry in pending:
            self._replay(entry, pair.access_token)

    def _resume(self, pending: list[_PendingRequest], current: CredentialPair | None) -> None:
        logger.info("Credentials changed during renewal; discarding the exchange result")
        for entry in pending:
            if current is None:
                entry.outcome.set_exception(SessionExpiredError("Signed out while the session was being renewed"))
            else:
                self._replay(entry, current.access_token)

    def _replay(self, entry: _PendingRequest, token: str) -> None:
        try:
            result = self._http_client.execute(entry.request, token)
        except Exception as exc:
            entry.outcome.set_exception(exc)
        else:
            entry.outcome.set_result(result)

    def _expire(self, pending: list[_PendingRequest], cause: Exception | None) -> None:
        logger.warning("Credential renewal failed, signing out: %s", cause)
        for listener in list(self._on_expired):
            try:
                listener()
            except Exception:
                logger.exception("Session expiry listener failed")

        for entry in pending:
            error = SessionExpiredError("Session expired; sign in again")
            error.__cause__ = cause
            entry.outcome.set_exception(error)

    @staticmethod
    def _abandon(pending: list[_PendingRequest]) -> None:
        # Reached with unresolved entries only when the leader was interrupted.
        for entry in pending:
            if not entry.outcome.done():
                entry.outcome.set_exception(SessionExpiredError("Session renewal was interrupted"))

    def _detach(self) -> list[_PendingRequest]:
        pending = self._pending
        self._pending = []
        self._state = RenewalState.IDLE
        return pending
