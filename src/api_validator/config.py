"""Runtime settings.

Precedence: model defaults < settings saved in the store < environment
variables (API_VALIDATOR_*).
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field

ENV_PREFIX = "API_VALIDATOR_"
DEFAULT_DATA_DIR = Path.home() / ".api-validator"


class Settings(BaseModel):
    test_delay_ms: int = Field(default=100, ge=0)
    request_timeout: float = Field(default=10.0, gt=0)
    max_concurrent_tests: int = Field(default=5, ge=1)
    dark_mode: bool = True

    @property
    def test_delay(self) -> float:
        """Inter-test delay in seconds."""
        return self.test_delay_ms / 1000


def data_dir(override: Path | None = None) -> Path:
    if override is not None:
        return override
    env = os.getenv(ENV_PREFIX + "DATA_DIR")
    return Path(env) if env else DEFAULT_DATA_DIR


def apply_env(settings: Settings) -> Settings:
    """Return a copy of ``settings`` with API_VALIDATOR_* overrides applied."""
    overrides = {}
    for name in ("test_delay_ms", "request_timeout", "max_concurrent_tests"):
        value = os.getenv(ENV_PREFIX + name.upper())
        if value:
            overrides[name] = value
    if not overrides:
        return settings
    return Settings.model_validate({**settings.model_dump(), **overrides})
