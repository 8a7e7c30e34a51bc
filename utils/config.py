"""
Configuration management.
"""

import os
from dataclasses import dataclass, field


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Invitation links
    app_url: str = field(
        default_factory=lambda: os.getenv("ACTOR_APP_URL", "http://localhost:3000").rstrip("/")
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Self-service tokens
    token_default_expiry_days: int = field(
        default_factory=lambda: int(os.getenv("TOKEN_DEFAULT_EXPIRY_DAYS", "7"))
    )
    token_min_expiry_days: int = field(
        default_factory=lambda: int(os.getenv("TOKEN_MIN_EXPIRY_DAYS", "1"))
    )
    token_max_expiry_days: int = field(
        default_factory=lambda: int(os.getenv("TOKEN_MAX_EXPIRY_DAYS", "30"))
    )

    # Ownership
    redistribution_strategy: str = field(
        default_factory=lambda: os.getenv("REDISTRIBUTION_STRATEGY", "proportional").lower()
    )

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("ACTOR_DATA_DIR", "./data"))

    def __post_init__(self):
        if self.token_min_expiry_days > self.token_max_expiry_days:
            raise ValueError("TOKEN_MIN_EXPIRY_DAYS cannot exceed TOKEN_MAX_EXPIRY_DAYS")

    @property
    def token_bounds(self) -> tuple[int, int]:
        return (self.token_min_expiry_days, self.token_max_expiry_days)

    @property
    def actors_path(self) -> str:
        return os.path.join(self.data_dir, "actors.json")

    @property
    def activity_dir(self) -> str:
        return os.path.join(self.data_dir, "activity")

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "app_url": self.app_url,
            "log_level": self.log_level,
            "token_default_expiry_days": self.token_default_expiry_days,
            "token_min_expiry_days": self.token_min_expiry_days,
            "token_max_expiry_days": self.token_max_expiry_days,
            "redistribution_strategy": self.redistribution_strategy,
            "data_dir": self.data_dir,
        }
