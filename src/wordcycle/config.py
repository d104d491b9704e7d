"""Configuration settings for the scheduling engine."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))

# Leitner box intervals (in days) per supported box count
BOX_INTERVAL_PRESETS = {
    3: [1, 7, 30],
    5: [1, 3, 7, 14, 30],
    7: [1, 2, 4, 7, 14, 30, 60],
}
SR_ALGORITHMS = ("sm2", "modifiedsm2", "simple")


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'wordcycle.db'}")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class LearningSettings:
    """Spaced repetition and session settings."""
    algorithm: str = os.getenv("SR_ALGORITHM", "sm2")
    leitner_box_count: int = int(os.getenv("LEITNER_BOX_COUNT", "5"))
    words_per_session: int = int(os.getenv("WORDS_PER_SESSION", "20"))
    new_words_per_session: int = int(os.getenv("NEW_WORDS_PER_SESSION", "10"))
    new_words_ratio: float = float(os.getenv("NEW_WORDS_RATIO", "0.3"))
    max_retries_per_session: int = int(os.getenv("MAX_RETRIES_PER_SESSION", "3"))
    requeue_spacing: int = int(os.getenv("REQUEUE_SPACING", "2"))
    stats_timezone: Optional[str] = os.getenv("STATS_TIMEZONE") or None


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_learning_settings() -> LearningSettings:
    """Get learning settings."""
    return LearningSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    learning: LearningSettings = field(default_factory=get_learning_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.learning.algorithm not in SR_ALGORITHMS:
            raise ValueError(f"SR_ALGORITHM must be one of {', '.join(SR_ALGORITHMS)}")

        if self.learning.leitner_box_count not in BOX_INTERVAL_PRESETS:
            raise ValueError("LEITNER_BOX_COUNT must be 3, 5 or 7")

        if self.learning.new_words_ratio < 0 or self.learning.new_words_ratio > 1:
            raise ValueError("NEW_WORDS_RATIO must be between 0 and 1")

        if self.learning.words_per_session < 1:
            raise ValueError("WORDS_PER_SESSION must be positive")

        if self.learning.new_words_per_session < 0:
            raise ValueError("NEW_WORDS_PER_SESSION cannot be negative")

        if self.learning.max_retries_per_session < 1:
            raise ValueError("MAX_RETRIES_PER_SESSION must be positive")

        if self.learning.requeue_spacing < 1:
            raise ValueError("REQUEUE_SPACING must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
