"""
USSD dial-code template substitution.

Provider templates use {merchant}, {amount} and {phone} placeholders,
e.g. "*182*8*1*{merchant}*{amount}#".
"""

import re

_PLACEHOLDER = re.compile(r"\{(merchant|amount|phone)\}")


def format_ussd(template: str, **values: str) -> str:
    """
    Substitute placeholders in a USSD template.

    Args:
        template: USSD template string
        **values: Placeholder values (merchant, amount, phone)

    Returns:
        The dial code with placeholders replaced

    Raises:
        ValueError: If the template needs a value that was not supplied
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        value = values.get(key)
        if value is None:
            raise ValueError(f"USSD template requires '{key}'")
        return re.sub(r"[\s,]", "", str(value))

    return _PLACEHOLDER.sub(_replace, template)
