"""
Audit and notification sinks written to by the decision engine.
"""

from .recorder import AuditLog
from .events import EventBus, Subscription

__all__ = ["AuditLog", "EventBus", "Subscription"]
