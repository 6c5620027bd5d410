"""Utility functions for the Toon API Client."""

import re

_BEARER_RE = re.compile(r"Bearer\s+[a-zA-Z0-9\-_.~+/=]+")
_TOKEN_RE = re.compile(r"""((?:access|refresh)_token['"]?\s*[:=]\s*['"]?)[^'",&\s}]+""")
_AGREEMENT_RE = re.compile(r"""(agreementId['"]?\s*[:=]\s*['"]?)([0-9A-Za-z\-]{4,})""")


def mask_pii(text: str) -> str:
    """Mask sensitive data (tokens, agreement ids) in a string."""
    if not text:
        return text

    # Mask Tokens (Bearer eyJ...)
    text = _BEARER_RE.sub("Bearer ***", text)

    # Mask token values in form data or JSON
    text = _TOKEN_RE.sub(r"\1***", text)

    # Mask agreement ids, keeping the last two characters for correlation
    text = _AGREEMENT_RE.sub(lambda m: m.group(1) + "****" + m.group(2)[-2:], text)

    return text
