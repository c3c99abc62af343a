"""Masking helpers for contact destinations shown to users and written to logs."""

from __future__ import annotations


def mask_phone(phone: str) -> str:
    """Keep the leading ``+`` and the last two digits.

    >>> mask_phone("+14155550123")
    '+*********23'
    """
    digits = [ch for ch in phone if ch.isdigit()]
    if len(digits) <= 2:
        return "*" * len(digits)
    prefix = "+" if phone.strip().startswith("+") else ""
    return prefix + "*" * (len(digits) - 2) + "".join(digits[-2:])


def mask_email(email: str) -> str:
    """Keep the first character of the local part and the domain.

    >>> mask_email("alice@example.com")
    'a****@example.com'
    """
    local, sep, domain = email.partition("@")
    if not sep:
        return "*" * len(email)
    if len(local) <= 1:
        return f"*@{domain}"
    return f"{local[0]}{'*' * (len(local) - 1)}@{domain}"


def mask_destination(channel: str, destination: str) -> str:
    """Mask ``destination`` according to its channel name."""
    if channel == "sms":
        return mask_phone(destination)
    if channel == "email":
        return mask_email(destination)
    if len(destination) <= 4:
        return "*" * len(destination)
    return f"{destination[:2]}{'*' * (len(destination) - 4)}{destination[-2:]}"


__all__: list[str] = ["mask_phone", "mask_email", "mask_destination"]
