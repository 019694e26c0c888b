from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from functools import lru_cache


class NotificationSender(ABC):
    @abstractmethod
    async def send_agreement_notice(self, recipient: str, document_url: str) -> None:
        """Tell an investor the loan agreement letter is ready."""


class LoggingNotificationSender(NotificationSender):
    """Writes agreement notices to the ``app.notifications`` log stream instead of mailing them."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("app.notifications")

    async def send_agreement_notice(self, recipient: str, document_url: str) -> None:
        self.logger.info("Sending agreement email to %s with URL: %s", recipient, document_url)


@lru_cache(maxsize=1)
def get_notification_sender() -> NotificationSender:
    return LoggingNotificationSender()
