"""
auth/policy.py -- Password complexity rules.

validate_password() reports every violated rule, not just the first, so a
client can fix all problems in one round trip. Rule names are stable API:
they appear in WeakPassword.rules and map to fixed messages below.

Pure functions, no I/O.
"""

from __future__ import annotations

import re

MIN_LENGTH = 8

PASSWORD_ERROR_MESSAGES: dict[str, str] = {
    "min": f"Password must be at least {MIN_LENGTH} characters long.",
    "uppercase": "Password must contain at least one uppercase letter.",
    "lowercase": "Password must contain at least one lowercase letter.",
    "digits": "Password must contain at least one digit.",
    "spaces": "Password must not contain spaces.",
}

GENERIC_PASSWORD_MESSAGE = "Password does not meet complexity requirements."

# (rule name, pattern that must match for the rule to hold), reported after
# "min" and before "spaces".
# ASCII classes: letters and digits from other scripts do not count.
_RULES = (
    ("uppercase", re.compile(r"[A-Z]")),
    ("lowercase", re.compile(r"[a-z]")),
    ("digits", re.compile(r"[0-9]")),
)
_WHITESPACE = re.compile(r"\s")


def validate_password(password: str) -> list[str]:
    """Return the names of all rules the password violates. Empty means compliant."""
    violated = ["min"] if len(password) < MIN_LENGTH else []
    violated += [name for name, pattern in _RULES if not pattern.search(password)]
    if _WHITESPACE.search(password):
        violated.append("spaces")
    return violated


def describe_violations(rules: list[str]) -> list[str]:
    """Map rule names to their messages. Unknown names get the generic message."""
    return [PASSWORD_ERROR_MESSAGES.get(rule, GENERIC_PASSWORD_MESSAGE) for rule in rules]
