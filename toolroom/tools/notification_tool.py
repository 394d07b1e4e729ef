import logging
from typing import List

from toolroom.config import settings

logger = logging.getLogger(__name__)

class NotificationTool:
    """
    Hook fired after a requisition or PO change has been committed.
    Delivery (e-mail, webhook) is not wired up; messages are only logged.
    """
    def __init__(self):
        pass

    async def send_notification(self, users: List[str], subject: str, message: str, channels: List[str] = ["email"]):
        """
        Routes notifications to users via specified channels.
        Recipients are user ids or "role:<name>" groups.
        """
        if not settings.NOTIFICATIONS_ENABLED:
            return
        for user in users:
            for channel in channels:
                if channel == "webhook":
                    await self._send_webhook(user, message)
                elif channel == "email":
                    await self._send_email(user, subject, message)

    async def _send_webhook(self, user: str, message: str):
        logger.info(f"[WEBHOOK] To {user}: {message[:50]}...")

    async def _send_email(self, user: str, subject: str, body: str):
        logger.info(f"[EMAIL] To {user} | Subject: {subject}")

notification_tool = NotificationTool()
