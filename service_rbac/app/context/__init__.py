"""
User context holder.
"""

from .store import ContextStore

__all__ = ["ContextStore"]
