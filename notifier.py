"""
Order confirmation emails, sent through SendGrid dynamic templates.
"""
import logging
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridNotifier:
    def __init__(
        self,
        api_key: Optional[str],
        template_id: Optional[str],
        from_email: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.template_id = (template_id or "").strip()
        self.from_email = from_email
        self.timeout = timeout
        self.session = session or requests.Session()

    def send_order_confirmation(self, email: str, data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
        """Send the order template to ``email``. Returns (ok, error message)."""
        if not self.api_key or not self.template_id:
            return False, "SendGrid API key or order template id is not configured."
        if not email:
            return False, "Missing customer email for the order confirmation."

        payload = {
            "from": {"email": self.from_email},
            "personalizations": [{"to": [{"email": email}], "dynamic_template_data": data}],
            "template_id": self.template_id,
        }
        try:
            response = self.session.post(
                SENDGRID_SEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            return False, str(exc)

        if response.status_code >= 400:
            return False, f"SendGrid returned {response.status_code}: {response.text[:200]}"
        logger.info("Order confirmation queued for %s", email)
        return True, None
