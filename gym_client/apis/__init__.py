from .sessions_api import SessionsApi
from .users_api import UsersApi
from .catalog_api import CatalogApi

__all__ = ["SessionsApi", "UsersApi", "CatalogApi"]
