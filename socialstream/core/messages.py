"""User-facing messages shown after an OAuth callback.

Message keys are English templates. Placeholders follow the translation
convention of the frontend: ``:provider`` is replaced verbatim and
``:Provider`` with the first letter upper-cased, ``:PROVIDER`` fully
upper-cased.
"""

import re

PROVIDER_ALREADY_LINKED_TO_OTHER = (
    "This :Provider sign in account is already associated with another user. "
    "Please try a different account."
)
PROVIDER_CONNECTED = "You have successfully connected :Provider to your account."
PROVIDER_ALREADY_LINKED = (
    "This :Provider sign in account is already associated with your user."
)
PROVIDER_ALREADY_REGISTERED = (
    "An account with that :Provider sign in already exists, please login."
)
PROVIDER_MISSING_EMAIL = (
    "No email address is associated with this :Provider account. "
    "Please try a different account."
)
EMAIL_ALREADY_EXISTS = (
    "An account with that email address already exists. "
    "Please login to connect your :Provider account."
)
ACCOUNT_NOT_FOUND = (
    "An account with this :Provider sign in was not found. "
    "Please register or try a different sign in method."
)
INVALID_STATE = (
    "Your :Provider sign in session has expired or is invalid. Please try again."
)

_PLACEHOLDER = re.compile(r":([A-Za-z_]+)")


def translate(key: str, replacements: dict[str, str] | None = None) -> str:
    """Render a message template.

    Args:
        key: Message template (one of the constants above, or free text).
        replacements: Placeholder values keyed by lowercase name.

    Returns:
        The rendered message. Unknown placeholders are left untouched.
    """
    if not replacements:
        return key

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = replacements.get(name.lower())
        if value is None:
            return match.group(0)
        if len(name) > 1 and name.isupper():
            return value.upper()
        if name[0].isupper():
            return value[:1].upper() + value[1:]
        return value

    return _PLACEHOLDER.sub(_substitute, key)
