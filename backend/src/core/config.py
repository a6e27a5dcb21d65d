"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the booking engine.
"""

import os
import pathlib
from dotenv import load_dotenv


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    # Try multiple possible locations for .env file
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",  # .env in current directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/booking_engine_dev"
    )

DATABASE_URL = get_database_url()

# Waitlist hold: how long a NOTIFIED queue ticket may be claimed before it lapses
QUEUE_HOLD_MINUTES = int(os.getenv("QUEUE_HOLD_MINUTES", "30"))

# Availability lookups without an explicit end use this many days
AVAILABILITY_WINDOW_DAYS = int(os.getenv("AVAILABILITY_WINDOW_DAYS", "14"))

# SQLite only: how long a writer waits for the database lock
DB_BUSY_TIMEOUT_SECONDS = int(os.getenv("DB_BUSY_TIMEOUT_SECONDS", "30"))

# Notification stream: most recent events kept in memory for consumers
NOTIFICATION_BUFFER_SIZE = int(os.getenv("NOTIFICATION_BUFFER_SIZE", "10000"))
