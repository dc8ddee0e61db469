from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Mapping

from gym_client.apis import CatalogApi
from gym_client.errors import GymClientError, ValidationError
from gym_client.models import AvatarImage, Exercise
from gym_client.session import SessionContext
from gym_client.validation import PROFILE_RULES, SIGN_IN_RULES, SIGN_UP_RULES, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    title: str
    level: str = "info"


Notify = Callable[[Notification], None]


class _Screen:
    def __init__(self, session: SessionContext, notify: Notify):
        self._session = session
        self._notify = notify
        self.errors: dict[str, str] = {}
        self.is_busy = False

    def _run(self, action: Callable[[], Any], success_title: str | None = None) -> bool:
        self.is_busy = True
        try:
            action()
        except ValidationError as exc:
            self.errors = exc.errors
            return False
        except GymClientError as exc:
            logger.info("%s failed: %s", type(self).__name__, exc)
            self._notify(Notification(exc.user_message, "error"))
            return False
        finally:
            self.is_busy = False

        self.errors = {}
        if success_title:
            self._notify(Notification(success_title, "success"))
        return True


class SignInScreen(_Screen):
    def submit(self, form: Mapping[str, Any]) -> bool:
        def action() -> None:
            values = validate(SIGN_IN_RULES, form)
            self._session.sign_in(values["email"], values["password"])

        return self._run(action)


class SignUpScreen(_Screen):
    def submit(self, form: Mapping[str, Any]) -> bool:
        def action() -> None:
            values = validate(SIGN_UP_RULES, form)
            self._session.sign_up(values["name"], values["email"], values["password"])

        return self._run(action)


class ProfileScreen(_Screen):
    def submit(self, form: Mapping[str, Any]) -> bool:
        def action() -> None:
            values = validate(PROFILE_RULES, form)
            patch = {
                "name": values["name"],
                "password": values.get("password"),
                "old_password": values.get("old_password"),
            }
            self._session.update_profile(patch)

        return self._run(action, "Profile updated!")

    def change_photo(self, image: AvatarImage | None) -> bool:
        if image is None:
            return False
        return self._run(lambda: self._session.update_avatar(image), "Photo updated")


class HomeScreen(_Screen):
    def __init__(self, session: SessionContext, catalog: CatalogApi, notify: Notify):
        super().__init__(session, notify)
        self._catalog = catalog
        self.groups: list[str] = []
        self.selected_group: str | None = None
        self.exercises: list[Exercise] = []

    def load(self) -> bool:
        def action() -> None:
            self.groups = self._catalog.list_groups()
            if self.groups and self._find_group(self.selected_group) is None:
                self.selected_group = self.groups[0]
            self._load_exercises()

        return self._run(action)

    def select_group(self, name: str) -> bool:
        group = self._find_group(name)
        if group is None:
            return False
        if group == self.selected_group and self.exercises:
            return True
        self.selected_group = group
        return self._run(self._load_exercises)

    def is_active(self, group: str) -> bool:
        return self.selected_group is not None and group.upper() == self.selected_group.upper()

    def _find_group(self, name: str | None) -> str | None:
        if not name:
            return None
        for group in self.groups:
            if group.upper() == name.upper():
                return group
        return None

    def _load_exercises(self) -> None:
        if self.selected_group is None:
            self.exercises = []
            return
        self.exercises = self._catalog.list_exercises(self.selected_group)
