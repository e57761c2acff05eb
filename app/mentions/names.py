"""Deriving the name a user is @mentioned by."""

from typing import Any

from app.schemas.slack import DisplayName


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def resolve_display_name(user: Any) -> DisplayName:
    """
    Derive the first and last name used for mention matching.

    Priority:
        1. `full_name` split on whitespace (first token, then the rest)
        2. `first_name` / `last_name`
        3. email local part of the form `first.last`, capitalized
        4. email local part alone, capitalized, with an empty last name

    Args:
        user: Any object with optional `full_name`, `first_name`,
            `last_name` and `email` attributes (e.g. the User model)

    Returns:
        DisplayName
    """
    full_name = _clean(getattr(user, "full_name", None))
    if full_name:
        first, *rest = full_name.split()
        return DisplayName(first_name=first, last_name=" ".join(rest))

    first_name = _clean(getattr(user, "first_name", None))
    last_name = _clean(getattr(user, "last_name", None))
    if first_name or last_name:
        return DisplayName(first_name=first_name, last_name=last_name)

    email = _clean(getattr(user, "email", None))
    local_part = email.split("@", 1)[0].split("+", 1)[0]
    parts = [part for part in local_part.split(".") if part]
    if len(parts) >= 2:
        return DisplayName(
            first_name=parts[0].capitalize(),
            last_name=" ".join(part.capitalize() for part in parts[1:]),
        )
    return DisplayName(first_name=local_part.capitalize(), last_name="")
