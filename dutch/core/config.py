"""
Chain configuration for the auction ledger.

Defines the program identity, storage locations and logging defaults.
Values come from (lowest to highest precedence): dataclass defaults, an
optional JSON config file, and DUTCH_* environment variables (a .env file
is honored when present).
"""

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from dutch.crypto import keccak256

ENV_PREFIX = "DUTCH_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ChainConfig:
    """Chain-wide configuration parameters"""

    # Program identity
    program_label: str = "dutch-auction"  # Program id = keccak256(label)[-20:]

    # Storage parameters
    persist: bool = False  # In-memory ledger unless enabled
    data_dir: Path = Path("data")
    db_name: str = "ledger.db"

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_to_file: bool = False

    @property
    def program_id(self) -> bytes:
        """20-byte auction program id."""
        return keccak256(self.program_label.encode())[-20:]

    def ensure_directories(self) -> None:
        """Create the directories this configuration writes into."""
        if self.persist:
            self.data_dir.mkdir(exist_ok=True, parents=True)
        if self.log_to_file:
            self.log_dir.mkdir(exist_ok=True, parents=True)


class ConfigFile(BaseModel):
    """Schema of the JSON config file. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    program_label: Optional[str] = None
    persist: Optional[bool] = None
    data_dir: Optional[Path] = None
    db_name: Optional[str] = None
    log_level: Optional[str] = None
    log_dir: Optional[Path] = None
    log_to_file: Optional[bool] = None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return value


def _from_environment() -> dict:
    """Read DUTCH_* variables into a dict of raw ConfigFile fields."""
    values = {}
    for f in fields(ChainConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is not None:
            values[f.name] = raw
    return values


def load_config(
    config_path: Optional[str] = None,
    env_file: Optional[str] = None,
) -> ChainConfig:
    """
    Load configuration from file and environment.

    Args:
        config_path: Optional path to a JSON config file
        env_file: Optional .env file. If None, a .env in the working
            directory tree is used when found.

    Returns:
        ChainConfig instance

    Raises:
        pydantic.ValidationError: on unknown keys or badly typed values
    """
    load_dotenv(dotenv_path=env_file or find_dotenv(usecwd=True))

    overrides = {}
    if config_path:
        data = json.loads(Path(config_path).read_text())
        overrides.update(ConfigFile.model_validate(data).model_dump(exclude_none=True))

    env_values = ConfigFile.model_validate(_from_environment())
    overrides.update(env_values.model_dump(exclude_none=True))

    return replace(ChainConfig(), **overrides)

