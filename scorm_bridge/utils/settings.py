"""
Runtime settings for the SCORM bridge.

Environment-based configuration, read once per process. Every value can be
overridden through an environment variable so deployments (and tests) can
point the service at a different upload root, public URL or token secret.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List


DEFAULT_COMMIT_DELAY = 5.0
DEFAULT_SAMPLE_INTERVAL = 3.0


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    upload_root: Path = Path("uploads")
    base_url: str = "http://localhost:8000"
    token_secret: str = "dev-scorm-bridge-secret"
    token_max_age: int = 60 * 60 * 12
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:3001"]
    )
    commit_delay: float = DEFAULT_COMMIT_DELAY
    sample_interval: float = DEFAULT_SAMPLE_INTERVAL

    @property
    def scorm_root(self) -> Path:
        """Directory holding extracted packages; served under ``/scorm``."""
        return self.upload_root / "scorm"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development").lower(),
            upload_root=Path(os.getenv("UPLOAD_ROOT", "uploads")).resolve(),
            base_url=os.getenv("BASE_URL", "http://localhost:8000").rstrip("/"),
            token_secret=os.getenv(
                "SCORM_TOKEN_SECRET", "dev-scorm-bridge-secret"
            ),
            token_max_age=int(os.getenv("SCORM_TOKEN_MAX_AGE", 60 * 60 * 12)),
            cors_origins=os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:3001"
            ).split(","),
            commit_delay=_env_float(
                "SCORM_COMMIT_DELAY", DEFAULT_COMMIT_DELAY
            ),
            sample_interval=_env_float(
                "SCORM_SAMPLE_INTERVAL", DEFAULT_SAMPLE_INTERVAL
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return Settings.from_env()
