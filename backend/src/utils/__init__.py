"""
Utility modules for the booking engine.

This package contains shared helpers used across the services, including
datetime normalization and pagination.
"""

from utils.datetime_utils import utc_now
from utils.pagination import normalize_pagination

__all__ = ['utc_now', 'normalize_pagination']
