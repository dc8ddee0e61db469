from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from email_validator import EmailNotValidError, validate_email

from gym_client.errors import ValidationError

MIN_PASSWORD_LENGTH = 6

Check = Callable[[Any, Mapping[str, Any]], bool]


@dataclass(frozen=True)
class Rule:
    """A single field constraint.

    ``check`` receives the normalized field value and the whole form, so rules
    that depend on other fields (a confirmation matching its password) are
    expressed the same way as plain ones. ``when`` gates the rule on the form.
    """

    field: str
    check: Check
    message: str
    when: Callable[[Mapping[str, Any]], bool] | None = None


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def normalize(form: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _blank_to_none(value) for key, value in form.items()}


def required(value: Any, form: Mapping[str, Any]) -> bool:
    return value is not None


def is_email(value: Any, form: Mapping[str, Any]) -> bool:
    if value is None:
        return True
    try:
        validate_email(str(value), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def min_length(length: int) -> Check:
    def check(value: Any, form: Mapping[str, Any]) -> bool:
        return value is None or len(str(value)) >= length

    return check


def matches(other_field: str) -> Check:
    def check(value: Any, form: Mapping[str, Any]) -> bool:
        return value is None or value == form.get(other_field)

    return check


def has(field: str) -> Callable[[Mapping[str, Any]], bool]:
    return lambda form: form.get(field) is not None


SIGN_IN_RULES: tuple[Rule, ...] = (
    Rule("email", required, "Enter your e-mail."),
    Rule("email", is_email, "Invalid e-mail."),
    Rule("password", required, "Enter your password."),
    Rule("password", min_length(MIN_PASSWORD_LENGTH), "The password must have at least 6 characters."),
)

SIGN_UP_RULES: tuple[Rule, ...] = (
    Rule("name", required, "Enter your name."),
    Rule("email", required, "Enter your e-mail."),
    Rule("email", is_email, "Invalid e-mail."),
    Rule("password", required, "Enter a password."),
    Rule("password", min_length(MIN_PASSWORD_LENGTH), "The password must have at least 6 characters."),
    Rule("password_confirm", required, "Confirm the password."),
    Rule("password_confirm", matches("password"), "The password confirmation does not match."),
)

# Password fields are optional on the profile form; once a new password is
# given, its confirmation and the current password become mandatory.
PROFILE_RULES: tuple[Rule, ...] = (
    Rule("name", required, "Enter your name."),
    Rule("password", min_length(MIN_PASSWORD_LENGTH), "The password must have at least 6 characters."),
    Rule("confirm_password", required, "Confirm the new password.", when=has("password")),
    Rule("confirm_password", matches("password"), "The password confirmation does not match."),
    Rule("old_password", required, "Enter your current password.", when=has("password")),
)


def validate(rules: tuple[Rule, ...], form: Mapping[str, Any]) -> dict[str, Any]:
    """Return the normalized form, or raise ``ValidationError`` with the first failure per field."""
    values = normalize(form)
    errors: dict[str, str] = {}
    for rule in rules:
        if rule.field in errors:
            continue
        if rule.when is not None and not rule.when(values):
            continue
        if not rule.check(values.get(rule.field), values):
            errors[rule.field] = rule.message

    if errors:
        raise ValidationError(errors)
    return values
