"""
Application settings using Pydantic Settings v2.

Environment variables are loaded from .env file and can be overridden
by actual environment variables.

The module-level ``settings`` instance is used for process bootstrap only
(logging, the FastAPI lifespan, request-level gates). Core components
(generator, policy, stores, service) receive their parameters explicitly.
"""

from pathlib import Path
from typing import Annotated, Literal

from pydantic import AliasChoices, Field, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from keygate.features.keys.models import KeyFormat


def find_env_file() -> str:
    """
    Find .env file in current directory or parent directory.

    Returns:
        Path to .env file (current dir, parent dir, or default ".env")
    """
    current = Path.cwd() / ".env"
    parent = Path.cwd().parent / ".env"

    if current.exists():
        return str(current)
    elif parent.exists():
        return str(parent)
    else:
        # Fallback to default (will use environment variables only)
        return ".env"


class DatabaseSettings(BaseSettings):
    """Persistence configuration"""

    sqlite_path: Annotated[
        str,
        Field(
            default="./.dbdata/sqlite/keys.db",
            description="Path to SQLite database file (sqlite backend)",
            validation_alias="KEYGATE_SQLITE_PATH",
        ),
    ]
    json_path: Annotated[
        str,
        Field(
            default="./.dbdata/keys.json",
            description="Path to JSON key file (json backend)",
            validation_alias="KEYGATE_JSON_PATH",
        ),
    ]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sqlite_url(self) -> str:
        """Computed SQLite async URL with absolute path.

        Returns:
            SQLite connection URL for async SQLAlchemy engine with absolute path.
        """
        # Resolve to absolute path (handles relative paths from any working directory)
        abs_path = Path(self.sqlite_path).resolve()
        # Ensure parent directory exists
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite+aiosqlite:///{abs_path}"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def json_path_resolved(self) -> str:
        """Resolved absolute path for the JSON key file."""
        return str(Path(self.json_path).resolve())

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )


class KeyPolicySettings(BaseSettings):
    """Key issuance and lifecycle rules.

    The validity window is fixed per deployment; callers cannot choose it.
    """

    validity_hours: Annotated[
        int,
        Field(
            default=24,
            ge=1,
            le=24 * 365,
            description="Hours a key stays valid after creation",
            validation_alias="KEYGATE_KEY_VALIDITY_HOURS",
        ),
    ]
    default_max_uses: Annotated[
        int,
        Field(
            default=1,
            ge=1,
            le=1_000_000,
            description="Number of redemptions a key allows unless the issuer overrides it",
            validation_alias="KEYGATE_DEFAULT_MAX_USES",
        ),
    ]
    min_length: Annotated[
        int,
        Field(
            default=8,
            ge=1,
            description="Smallest token length; shorter requests are clamped up",
            validation_alias="KEYGATE_MIN_KEY_LENGTH",
        ),
    ]
    max_length: Annotated[
        int,
        Field(
            default=128,
            ge=1,
            le=4096,
            description="Largest token length; longer requests are clamped down",
            validation_alias="KEYGATE_MAX_KEY_LENGTH",
        ),
    ]
    default_length: Annotated[
        int,
        Field(
            default=32,
            ge=1,
            description="Token length used when the issuer does not pass one",
            validation_alias="KEYGATE_DEFAULT_KEY_LENGTH",
        ),
    ]
    default_format: Annotated[
        KeyFormat,
        Field(
            default=KeyFormat.UUID,
            description="Token format used when the issuer does not pass one",
            validation_alias="KEYGATE_DEFAULT_KEY_FORMAT",
        ),
    ]
    generation_max_attempts: Annotated[
        int,
        Field(
            default=3,
            ge=1,
            le=20,
            description="Generate+create attempts before giving up on token collisions",
            validation_alias="KEYGATE_GENERATION_MAX_ATTEMPTS",
        ),
    ]
    search_result_limit: Annotated[
        int,
        Field(
            default=1,
            ge=1,
            le=1000,
            description="Maximum number of records a search returns (most recent first)",
            validation_alias="KEYGATE_SEARCH_RESULT_LIMIT",
        ),
    ]

    @model_validator(mode="after")
    def validate_length_bounds(self) -> "KeyPolicySettings":
        """Ensure min_length <= default_length <= max_length."""
        if self.min_length > self.max_length:
            raise ValueError(
                f"KEYGATE_MIN_KEY_LENGTH ({self.min_length}) must not exceed "
                f"KEYGATE_MAX_KEY_LENGTH ({self.max_length})"
            )
        if not self.min_length <= self.default_length <= self.max_length:
            raise ValueError(
                f"KEYGATE_DEFAULT_KEY_LENGTH ({self.default_length}) must be within "
                f"[{self.min_length}, {self.max_length}]"
            )
        return self

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )


class SweeperSettings(BaseSettings):
    """Expired-key sweep configuration"""

    interval: Annotated[
        int,
        Field(
            default=300,
            ge=0,
            le=86400,
            description="Seconds between background sweeps (0 disables the background task)",
            validation_alias="KEYGATE_SWEEP_INTERVAL",
        ),
    ]
    sweep_on_request: Annotated[
        bool,
        Field(
            default=True,
            description="Sweep expired keys before listing and search requests",
            validation_alias="KEYGATE_SWEEP_ON_REQUEST",
        ),
    ]

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )


class AppSettings(BaseSettings):
    """Main application settings"""

    # Environment
    keygate_env: Annotated[
        str,
        Field(
            default="development",
            description="Environment (development/production)",
            validation_alias="KEYGATE_ENV",
        ),
    ]

    # Server
    port: Annotated[
        int,
        Field(
            default=5000,
            ge=1,
            le=65535,
            description="HTTP server port",
            validation_alias="KEYGATE_PORT",
        ),
    ]

    # Storage backend
    store_backend: Annotated[
        Literal["sqlite", "memory", "json"],
        Field(
            default="sqlite",
            description="Key store backend: sqlite, memory, json",
            validation_alias="KEYGATE_STORE_BACKEND",
        ),
    ]

    # Shared secret gating the search endpoint
    search_secret: Annotated[
        str | None,
        Field(
            default=None,
            description="Shared secret callers must send in X-Search-Secret to use key search. "
            "Search is disabled when unset. Generate with: openssl rand -base64 32",
            validation_alias="KEYGATE_SEARCH_SECRET",
        ),
    ]

    # Logging
    log_level: Annotated[
        str,
        Field(
            default="info",
            description="Log level: debug, info, warn, error",
            validation_alias="KEYGATE_LOG_LEVEL",
        ),
    ]
    log_format: Annotated[
        str,
        Field(
            default="json",
            description="Log format: json, text",
            validation_alias="KEYGATE_LOG_FORMAT",
        ),
    ]

    # CORS
    # Note: Type is str | list[str] to prevent Pydantic Settings from trying
    # to JSON-parse the env var. The validator converts comma-separated strings to list.
    cors_origins: Annotated[
        str | list[str],
        Field(
            default=["http://localhost:5000", "http://localhost:5173"],
            description="Allowed CORS origins (comma-separated string or list)",
            validation_alias=AliasChoices("keygate_allow_origins", "cors_origins"),
        ),
    ]

    # Nested settings
    database: Annotated[
        DatabaseSettings, Field(default_factory=DatabaseSettings, description="Database settings")
    ]
    keys: Annotated[
        KeyPolicySettings,
        Field(default_factory=KeyPolicySettings, description="Key issuance and lifecycle rules"),
    ]
    sweeper: Annotated[
        SweeperSettings,
        Field(default_factory=SweeperSettings, description="Expired-key sweep settings"),
    ]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from string or list.

        Args:
            v: Either a JSON string, comma-separated string, or list of origin URLs.

        Returns:
            List of CORS origin URLs.
        """
        if isinstance(v, str):
            # Handle JSON array string from env var
            import json

            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # Fallback to comma-separated
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def search_enabled(self) -> bool:
        """Whether the search endpoint accepts requests."""
        return bool(self.search_secret)

    @model_validator(mode="after")
    def validate_production_configuration(self) -> "AppSettings":
        """Validate production-only requirements."""
        if self.keygate_env != "production":
            return self

        if self.search_secret is not None and len(self.search_secret) < 16:
            raise ValueError(
                "KEYGATE_SEARCH_SECRET must be at least 16 characters when KEYGATE_ENV=production. "
                "Generate with: openssl rand -base64 32"
            )

        if self.store_backend == "memory":
            raise ValueError(
                "KEYGATE_STORE_BACKEND=memory loses every key on restart and is not allowed "
                "when KEYGATE_ENV=production. Use sqlite or json."
            )

        for origin in self.cors_origins:
            if not origin.startswith(("http://", "https://")):
                raise ValueError(f"CORS origin must start with http:// or https://. Got: {origin}")

        return self

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance (loaded once at import, bootstrap use only)
settings = AppSettings()
