"""Application constants and configuration values."""

from core.config import QUEUE_HOLD_MINUTES, AVAILABILITY_WINDOW_DAYS, NOTIFICATION_BUFFER_SIZE

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_LOCALE_LENGTH = 10
MAX_TIMEZONE_LENGTH = 64
ID_LENGTH = 36  # UUID4 string form

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# Defaults applied when a booking does not carry its own context
DEFAULT_TIMEZONE = "UTC"
DEFAULT_LOCALE = "en"

# Pagination
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

# Waitlist hold window (minutes) granted to a promoted queue ticket
QUEUE_HOLD_DURATION_MINUTES = QUEUE_HOLD_MINUTES

# Default availability window length (days) when no end bound is given
DEFAULT_AVAILABILITY_WINDOW_DAYS = AVAILABILITY_WINDOW_DAYS

# Events retained by the in-process notification stream; older ones are dropped
MAX_BUFFERED_NOTIFICATIONS = NOTIFICATION_BUFFER_SIZE
