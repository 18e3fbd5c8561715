"""
Registration input validation.
"""

from __future__ import annotations

from auth_models import FieldError, UsernamePasswordInput

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 3


def validate_register(options: UsernamePasswordInput) -> list[FieldError]:
    """
    Return every rule violation found in ``options``; empty when valid.
    """
    errors: list[FieldError] = []

    if len(options.username) < MIN_USERNAME_LENGTH:
        errors.append(FieldError(field="username", message="length must be greater than 2"))

    # "@" marks an identifier as an email address at login.
    if "@" in options.username:
        errors.append(FieldError(field="username", message="cannot include an @"))

    if "@" not in options.email:
        errors.append(FieldError(field="email", message="invalid email"))

    if len(options.password) < MIN_PASSWORD_LENGTH:
        errors.append(FieldError(field="password", message="length must be greater than 2"))

    return errors
