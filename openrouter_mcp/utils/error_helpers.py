from __future__ import annotations

_CREDENTIALS_TIP = " Tip: Check that OPENROUTER_API_KEY and GEMINI_API_KEY are set and valid for this server."


def _looks_like_auth_issue(text: str) -> bool:
    """Best-effort detection for auth/credential issues from provider errors.

    Matches common substrings rather than SDK-specific exception types so the
    same check works for both the OpenAI SDK and raw httpx failures.
    """
    if not text:
        return False
    lower = text.lower()

    keywords = [
        # auth/credentials
        "api key",
        "apikey",
        "api_key",
        "invalid key",
        "no api key",
        "unauthorized",
        "forbidden",
        "permission",
        "access denied",
        "credentials",
        "not configured",
        "401",
        "403",
        # billing/quota
        "billing",
        "quota",
        "insufficient credits",
    ]

    return any(k in lower for k in keywords)


def augment_with_credentials_tip(message: str) -> str:
    """Append a credentials tip to the message when appropriate.

    Ensures we don't duplicate the tip on repeated calls.
    """
    if not message:
        return message
    if _CREDENTIALS_TIP.strip() in message:
        return message
    if _looks_like_auth_issue(message):
        return message.rstrip() + _CREDENTIALS_TIP
    return message


def describe_http_error(status_code: int, body: str, *, limit: int = 300) -> str:
    """Short one-line description of a non-2xx upstream response."""
    snippet = " ".join(body.split())
    if len(snippet) > limit:
        snippet = snippet[:limit] + "..."
    return f"HTTP {status_code}: {snippet}" if snippet else f"HTTP {status_code}"


__all__ = ["augment_with_credentials_tip", "describe_http_error"]
