"""
Notification sink for end-of-cycle status messages.
Logs every event and keeps a short in-memory history for the API; swap in a
real integration (email/Slack/Webhooks) by passing any ``(message, severity)``
callable to the dashboard.
"""
from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Literal, get_args
import logging

logger = logging.getLogger(__name__)

Severity = Literal["success", "error"]
NotificationSink = Callable[[str, str], None]


class NotificationLog:
    """Callable sink remembering the most recent notifications."""

    def __init__(self, max_history: int = 50) -> None:
        self._history: Deque[Dict[str, Any]] = deque(maxlen=max_history)

    def __call__(self, message: str, severity: Severity = "success") -> None:
        if severity not in get_args(Severity):
            raise ValueError(f"Unknown notification severity: {severity}")
        payload = {
            "message": message,
            "severity": severity,
            "createdAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        self._history.append(payload)
        if severity == "error":
            logger.warning("[NOTIFY] %s", message)
        else:
            logger.info("[NOTIFY] %s", message)

    def recent(self) -> List[Dict[str, Any]]:
        """Newest first."""
        return list(reversed(self._history))

    def __len__(self) -> int:
        return len(self._history)
