"""Test configuration."""
import os
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parents[3] / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import Session

from wordcycle.config import ensure_directories
from wordcycle.models.base import SessionLocal, drop_db, init_db
from wordcycle.services.scheduling_algorithms import reset_algorithm_instances


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    # Ensure test directories exist
    ensure_directories()
    reset_algorithm_instances()

    yield


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    drop_db()
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
