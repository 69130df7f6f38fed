"""
Request inbox for the POST viewer.

Stores captured POST requests in memory so they can be browsed as HTML.
The inbox lives as long as the serving process.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from modemhub.models import CapturedRequest

logger = logging.getLogger(__name__)


class RequestInbox:
    """In-memory list of captured requests, oldest first."""

    def __init__(self, max_entries: Optional[int] = 500):
        self._entries: List[CapturedRequest] = []
        self._last_id = 0
        self.max_entries = max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def _new_id(self) -> int:
        # Millisecond timestamp, bumped when two requests land in the same ms
        request_id = max(int(time.time() * 1000), self._last_id + 1)
        self._last_id = request_id
        return request_id

    def capture(
        self,
        method: str,
        headers: Dict[str, str],
        body: Any = None,
        query: Optional[Dict[str, Any]] = None,
    ) -> CapturedRequest:
        entry = CapturedRequest(
            id=self._new_id(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            method=method,
            headers=dict(headers),
            body=body,
            query=dict(query or {}),
        )
        self._entries.append(entry)

        if self.max_entries is not None and len(self._entries) > self.max_entries:
            dropped = len(self._entries) - self.max_entries
            self._entries = self._entries[dropped:]
            logger.debug(f"Inbox full, dropped {dropped} oldest requests")

        logger.info(f"Captured {method} request #{entry.id} ({len(self._entries)} stored)")
        return entry

    def entries(self) -> List[CapturedRequest]:
        """Captured requests, newest first."""
        return list(reversed(self._entries))

    def clear(self) -> int:
        """Remove all captured requests. Returns number removed."""
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {count} captured requests")
        return count
