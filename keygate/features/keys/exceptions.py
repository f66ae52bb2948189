"""Key store and issuance errors.

Expected redemption outcomes (not found, expired, exhausted) are ``KeyStatus``
values, not exceptions. Only failures live here.
"""


class KeyStoreError(Exception):
    """Base class for key store failures."""


class DuplicateTokenError(KeyStoreError):
    """A create collided with an existing token. The caller regenerates and retries."""

    def __init__(self, token_prefix: str):
        super().__init__(f"Token already exists: {token_prefix}")
        self.token_prefix = token_prefix


class StoreUnavailableError(KeyStoreError):
    """The persistence layer failed (I/O, locked database, unreadable file).

    Fatal to the current operation and never retried by the core.
    """


class GenerationFailedError(Exception):
    """Every generate+create attempt collided with an existing token."""

    def __init__(self, attempts: int):
        super().__init__(f"Could not generate a unique token after {attempts} attempts")
        self.attempts = attempts
