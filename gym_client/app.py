from __future__ import annotations

from dataclasses import dataclass

import requests

from gym_client.apis import CatalogApi, SessionsApi, UsersApi
from gym_client.config import AppSettings
from gym_client.credentials import CredentialStore, UserCache
from gym_client.http import HttpClient
from gym_client.logging_utils import configure_logging
from gym_client.renewal import RenewalCoordinator
from gym_client.session import SessionContext


@dataclass(frozen=True)
class GymClient:
    settings: AppSettings
    http_client: HttpClient
    renewal: RenewalCoordinator
    session: SessionContext
    catalog: CatalogApi


def build_client(
    settings: AppSettings,
    credential_store: CredentialStore | None = None,
    user_cache: UserCache | None = None,
    http_session: requests.Session | None = None,
) -> GymClient:
    credential_store = credential_store or CredentialStore.at_path(settings.credential_store_path)
    user_cache = user_cache or UserCache.at_path(settings.user_cache_path)

    http_client = HttpClient(settings, credential_store, session=http_session)
    renewal = RenewalCoordinator(http_client, credential_store, settings.refresh_path)
    http_client.attach_renewal(renewal)

    session = SessionContext(
        settings,
        credential_store,
        user_cache,
        SessionsApi(settings, http_client),
        UsersApi(settings, http_client),
        renewal,
    )
    return GymClient(
        settings=settings,
        http_client=http_client,
        renewal=renewal,
        session=session,
        catalog=CatalogApi(settings, http_client),
    )


def start() -> GymClient:
    settings = AppSettings.from_env()
    configure_logging(settings.log_level)
    client = build_client(settings)
    client.session.restore()
    return client
