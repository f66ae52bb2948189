"""Small shared helpers."""


def mask_token(token: str, visible: int = 8) -> str:
    """Return a log-safe form of a token (short prefix only).

    Tokens are secrets; logs only ever carry the first few characters.
    """
    if len(token) <= visible:
        return "***"
    return f"{token[:visible]}..."
