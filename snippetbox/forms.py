"""Form validation for the HTML handlers."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping, Optional

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$")

PASSWORD_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 100
EXPIRY_CHOICES = ("1", "7", "365")

NON_FIELD = "__all__"


class Form:
    """Submitted values plus the errors found while validating them."""

    def __init__(self, data: Optional[Mapping[str, object]] = None) -> None:
        self.values: Dict[str, str] = {}
        for key, value in (data or {}).items():
            if isinstance(value, str):
                self.values[key] = value
        self.errors: Dict[str, List[str]] = {}

    def get(self, field: str) -> str:
        return self.values.get(field, "")

    def add_error(self, field: str, message: str) -> None:
        self.errors.setdefault(field, []).append(message)

    def error(self, field: str) -> Optional[str]:
        messages = self.errors.get(field)
        return messages[0] if messages else None

    @property
    def non_field_errors(self) -> List[str]:
        return self.errors.get(NON_FIELD, [])

    @property
    def valid(self) -> bool:
        return not self.errors

    def required(self, *fields: str) -> "Form":
        for field in fields:
            if not self.get(field).strip():
                self.add_error(field, "This field cannot be blank")
        return self

    def max_length(self, field: str, limit: int) -> "Form":
        value = self.get(field)
        if value and len(value) > limit:
            self.add_error(field, f"This field is too long (maximum is {limit} characters)")
        return self

    def min_length(self, field: str, limit: int) -> "Form":
        value = self.get(field)
        if value and len(value) < limit:
            self.add_error(field, f"This field is too short (minimum is {limit} characters)")
        return self

    def permitted_values(self, field: str, options: Iterable[str]) -> "Form":
        value = self.get(field)
        if value and value not in options:
            self.add_error(field, "This field is invalid")
        return self

    def matches_pattern(self, field: str, pattern: "re.Pattern[str]") -> "Form":
        value = self.get(field)
        if value and not pattern.match(value):
            self.add_error(field, "This field is invalid")
        return self


def snippet_form(data: Mapping[str, object]) -> Form:
    form = Form(data)
    form.required("title", "content", "expires")
    form.max_length("title", TITLE_MAX_LENGTH)
    form.permitted_values("expires", EXPIRY_CHOICES)
    return form


def signup_form(data: Mapping[str, object]) -> Form:
    form = Form(data)
    form.required("name", "email", "password")
    form.max_length("name", 255)
    form.max_length("email", 255)
    form.matches_pattern("email", EMAIL_PATTERN)
    form.min_length("password", PASSWORD_MIN_LENGTH)
    return form


def login_form(data: Mapping[str, object]) -> Form:
    return Form(data).required("email", "password")


def password_form(data: Mapping[str, object]) -> Form:
    form = Form(data)
    form.required("current_password", "new_password", "new_password_confirmation")
    form.min_length("new_password", PASSWORD_MIN_LENGTH)
    if form.get("new_password") != form.get("new_password_confirmation"):
        form.add_error("new_password_confirmation", "Passwords do not match")
    return form


__all__ = [
    "EXPIRY_CHOICES",
    "Form",
    "NON_FIELD",
    "PASSWORD_MIN_LENGTH",
    "login_form",
    "password_form",
    "signup_form",
    "snippet_form",
]
