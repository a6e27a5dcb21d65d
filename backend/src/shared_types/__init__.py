"""
Shared type definitions for the booking engine.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.availability import TimeWindow

__all__ = ["TimeWindow"]
