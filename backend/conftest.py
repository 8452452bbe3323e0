"""Session-wide test setup for the backend.

Lives at the backend/ root so it is loaded before any test module imports
the application settings.
"""
import os

import pytest

# Must be set before the settings module is first imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from zvonok.core.config import settings  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def force_testing_mode():
    """Force TESTING=True early in the test session so imports can read it."""
    settings.TESTING = True
