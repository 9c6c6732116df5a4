"""
Audit trail of access checks.
"""

import uuid
from collections import deque
from itertools import islice
from typing import Deque, Dict, Any, Optional, List

from shared.logging import get_logger
from shared.errors import ConfigurationError
from ..rules.models import AuditLogEntry, PermissionCheckResult


class AuditLog:
    """Append-only, bounded record of access checks."""

    def __init__(self, max_size: int = 10000):
        if max_size <= 0:
            raise ConfigurationError(
                "Audit log max_size must be positive",
                details={"max_size": max_size}
            )
        self.max_size = max_size
        self.logger = get_logger("rbac.audit")
        self._entries: Deque[AuditLogEntry] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self,
        user_id: str,
        action: str,
        resource: str,
        result: PermissionCheckResult,
        context: Optional[Dict[str, Any]] = None
    ) -> AuditLogEntry:
        """Append an entry, dropping the oldest ones past ``max_size``."""
        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            user_id=user_id,
            action=action,
            resource=resource,
            result=result.model_copy(deep=True),
            context=dict(context) if context else None
        )
        self._entries.append(entry)

        while len(self._entries) > self.max_size:
            self._entries.popleft()

        return entry

    def entries(self, limit: int = 100) -> List[AuditLogEntry]:
        """Most recent entries, oldest first."""
        if limit <= 0:
            return []
        start = max(0, len(self._entries) - limit)
        return list(islice(self._entries, start, None))

    def trim(self, max_size: Optional[int] = None) -> int:
        """Drop oldest entries beyond ``max_size``; returns the number dropped."""
        limit = self.max_size if max_size is None else max(0, max_size)
        removed = 0

        while len(self._entries) > limit:
            self._entries.popleft()
            removed += 1

        if removed:
            self.logger.debug("Audit log trimmed", removed_count=removed)

        return removed

    def clear(self) -> None:
        self._entries.clear()
