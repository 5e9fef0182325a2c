from __future__ import annotations

from snippetbox.forms import NON_FIELD, Form, login_form, password_form, signup_form, snippet_form


def test_form_ignores_non_string_values() -> None:
    form = Form({"title": "Hello", "upload": object()})

    assert form.values == {"title": "Hello"}
    assert form.get("upload") == ""


def test_snippet_form_valid() -> None:
    form = snippet_form({"title": "Hello", "content": "World", "expires": "7"})

    assert form.valid
    assert form.errors == {}


def test_snippet_form_rules() -> None:
    form = snippet_form({"title": "x" * 101, "content": "   ", "expires": "2"})

    assert not form.valid
    assert form.error("title") == "This field is too long (maximum is 100 characters)"
    assert form.error("content") == "This field cannot be blank"
    assert form.error("expires") == "This field is invalid"


def test_signup_form_rules() -> None:
    assert signup_form({"name": "Ann", "email": "ann@example.com", "password": "0123456789"}).valid

    form = signup_form({"name": "Ann", "email": "ann@", "password": "012345678"})
    assert form.error("email") == "This field is invalid"
    assert form.error("password") == "This field is too short (minimum is 10 characters)"
    assert form.error("name") is None


def test_login_form_requires_both_fields() -> None:
    form = login_form({"email": "", "password": ""})

    assert set(form.errors) == {"email", "password"}


def test_password_form_rules() -> None:
    form = password_form(
        {
            "current_password": "old-password",
            "new_password": "new-password-1",
            "new_password_confirmation": "new-password-2",
        }
    )

    assert form.error("new_password_confirmation") == "Passwords do not match"


def test_non_field_errors() -> None:
    form = Form()
    form.add_error(NON_FIELD, "Email or password is incorrect")

    assert form.non_field_errors == ["Email or password is incorrect"]
    assert not form.valid
