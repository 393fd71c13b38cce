#!/usr/bin/env python3
"""Notification support via Apprise for retention events."""

import logging
from typing import Optional

import apprise

from .config import NotifyConfig
from .models import TickResult
from .utils import truncate_name

logger = logging.getLogger(__name__)

# Names listed in a deletion notification before summarizing the rest
MAX_LISTED_NAMES = 5


class Notifier:
    """Apprise-based notification sender for tick results.

    Apprise reaches Discord, Slack, Telegram, Pushover, email, webhooks and
    many more services from URL-based configuration. Without URLs, or when
    disabled, every call is a no-op.
    """

    def __init__(self, config: Optional[NotifyConfig] = None) -> None:
        """Initialize the notifier.

        Args:
            config: Notification configuration; None disables notifications
        """
        self._on_delete = config.on_delete if config else False
        self._on_error = config.on_error if config else False
        self._apprise: Optional[apprise.Apprise] = None

        if config is None or not config.enabled:
            return
        if not config.urls:
            logger.warning("[Notifications] Enabled but no NOTIFY_URLS configured")
            return

        self._apprise = apprise.Apprise()
        for url in config.urls:
            self._apprise.add(url)
        logger.info(f"[Notifications] Initialized with {len(self._apprise)} service(s)")

    @property
    def is_active(self) -> bool:
        """Check if notifications are active and configured."""
        return self._apprise is not None

    def notify_tick(self, result: TickResult) -> int:
        """Send the notification a finished tick calls for, if any.

        Args:
            result: Result of the tick

        Returns:
            Number of services successfully notified
        """
        if not result.success:
            return self.notify_error(result.error or "unknown error", context=result.instance)
        return self.notify_matches(result)

    def notify_matches(self, result: TickResult) -> int:
        """Send notification for torrents matched during a tick.

        Args:
            result: Successful tick result

        Returns:
            Number of services successfully notified
        """
        if not self.is_active or not self._on_delete:
            return 0
        if result.evaluation is None or not result.evaluation.matches:
            return 0

        evaluation = result.evaluation
        names = sorted({m.torrent.name for m in evaluation.matches})
        prefix = "[DRY RUN] Would delete" if result.dry_run else "Deleted"

        parts = [f"{prefix} {len(names)} torrent(s) on {result.instance}"]
        for name in names[:MAX_LISTED_NAMES]:
            parts.append(f"  - {truncate_name(name, 50)}")
        if len(names) > MAX_LISTED_NAMES:
            parts.append(f"  ... and {len(names) - MAX_LISTED_NAMES} more")

        return self._send(
            title="torrent-retention: Torrents Matched",
            body="\n".join(parts),
            notify_type=apprise.NotifyType.INFO,
        )

    def notify_error(self, error_message: str, context: str = "Tick") -> int:
        """Send notification for an error.

        Args:
            error_message: The error message
            context: Where the error occurred, usually the instance label

        Returns:
            Number of services successfully notified
        """
        if not self.is_active or not self._on_error:
            return 0

        return self._send(
            title=f"torrent-retention: {context} failed",
            body=f"Error: {error_message}",
            notify_type=apprise.NotifyType.FAILURE,
        )

    def _send(self, title: str, body: str,
              notify_type: apprise.NotifyType = apprise.NotifyType.INFO) -> int:
        """Send a notification via Apprise.

        Returns:
            Number of services successfully notified
        """
        try:
            result = self._apprise.notify(title=title, body=body, notify_type=notify_type)
        except Exception as e:
            logger.error(f"[Notifications] Error sending notification: {e}")
            return 0

        count = len(self._apprise)
        if result:
            logger.debug(f"[Notifications] Sent to {count} service(s): {title}")
        else:
            logger.warning(f"[Notifications] Failed to send: {title}")
        return count if result else 0
