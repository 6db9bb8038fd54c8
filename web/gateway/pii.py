"""Helpers that keep personal data out of structured logs."""


def mask_email(email: str | None) -> str:
    """Mask the local part of an address: ``jane@x.io`` -> ``ja**@x.io``."""
    if not email:
        return "-"
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        masked = "**"
    else:
        masked = local[:2] + "*" * (len(local) - 2)
    return f"{masked}@{domain}"
