"""
Symptom log access over the key-value store.
"""

from .log_access import LogAccess

__all__ = ["LogAccess"]
