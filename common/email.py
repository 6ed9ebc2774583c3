"""
Mimi's Kitchen API - Email Sender
==================================
Sends transactional emails through the Mailtrap sending API.
With no MAILTRAP_TOKEN configured, messages are logged and skipped.
"""

import logging
from typing import Optional

import httpx

from config.settings import (
    MAILTRAP_TOKEN, MAILTRAP_API_URL, EMAIL_FROM, EMAIL_FROM_NAME, GATEWAY_TIMEOUT_SECONDS,
)
from common.helpers import mask_email

logger = logging.getLogger("mimis.email")


class Mailer:

    def __init__(
        self,
        token: str = MAILTRAP_TOKEN,
        api_url: str = MAILTRAP_API_URL,
        sender: str = EMAIL_FROM,
        sender_name: str = EMAIL_FROM_NAME,
        client: Optional[httpx.Client] = None,
    ):
        self.token = token
        self.api_url = api_url
        self.sender = sender
        self.sender_name = sender_name
        self.client = client or httpx.Client(timeout=GATEWAY_TIMEOUT_SECONDS)

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def send(self, to_email: str, subject: str, text: str, to_name: str = "", category: str = "") -> bool:
        """
        Send a plain-text email.

        Returns:
            True if the API accepted the message, False if skipped or rejected.
        """
        if not self.enabled:
            logger.info(f"Email skipped (no API token): {mask_email(to_email)} -> {subject}")
            return False

        body = {
            "from": {"email": self.sender, "name": self.sender_name},
            "to": [{"email": to_email, "name": to_name or to_email}],
            "subject": subject,
            "text": text,
        }
        if category:
            body["category"] = category

        try:
            response = self.client.post(
                self.api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Email send failed to {mask_email(to_email)}: {e}")
            return False

        if response.status_code >= 400:
            logger.error(f"Email API error: {response.status_code} - {response.text}")
            return False

        logger.info(f"Email '{subject}' sent to {mask_email(to_email)}")
        return True

    def close(self):
        self.client.close()
