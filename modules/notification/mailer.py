"""
Mimasa Store - Mail Sender (Brevo)
====================================
Transactional email over the Brevo SMTP API.
send() returns True/False and never raises.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from config.settings import (
    BREVO_API_KEY, BREVO_API_URL, MAIL_SENDER_NAME, MAIL_SENDER_EMAIL,
)

logger = logging.getLogger("mimasa.notification")

if not BREVO_API_KEY:
    logger.warning("No Brevo API key configured - email sending disabled")


@dataclass
class MailAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


@dataclass
class MailMessage:
    to_address: str
    subject: str
    html_body: str
    to_name: str = ""
    bcc_addresses: List[str] = field(default_factory=list)
    attachments: List[MailAttachment] = field(default_factory=list)


class BrevoMailer:

    def __init__(
        self,
        api_key: str = BREVO_API_KEY,
        api_url: str = BREVO_API_URL,
        sender_name: str = MAIL_SENDER_NAME,
        sender_email: str = MAIL_SENDER_EMAIL,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.sender_name = sender_name
        self.sender_email = sender_email
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(self, message: MailMessage) -> dict:
        payload = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": message.to_address, "name": message.to_name or message.to_address}],
            "subject": message.subject,
            "htmlContent": message.html_body,
        }
        bcc = [addr for addr in message.bcc_addresses if addr and addr != message.to_address]
        if bcc:
            payload["bcc"] = [{"email": addr} for addr in bcc]
        if message.attachments:
            payload["attachment"] = [
                {"content": base64.b64encode(a.content).decode("ascii"), "name": a.filename}
                for a in message.attachments
            ]
        return payload

    def send(self, message: MailMessage) -> bool:
        if not self.api_key:
            logger.warning(f"Email skipped: no Brevo API key configured ({message.subject})")
            return False

        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "api-key": self.api_key,
        }
        try:
            response = self.session.post(
                self.api_url, json=self.build_payload(message), headers=headers, timeout=self.timeout,
            )
            if response.status_code in (200, 201, 202):
                logger.info(f"Email sent via Brevo to {message.to_address}: {message.subject}")
                return True
            logger.error(f"Brevo Error: {response.status_code} - {response.text}")
            return False

        except requests.exceptions.Timeout:
            logger.error("Brevo Timeout")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Brevo Failed: {e}")
            return False
