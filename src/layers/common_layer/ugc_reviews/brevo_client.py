import html
from datetime import datetime
from typing import Optional

import requests
from loguru import logger

from ugc_reviews.errors import UpstreamUnavailableError
from ugc_reviews.http_session import build_session

SEND_URL = "https://api.brevo.com/v3/smtp/email"


class MailerNotConfiguredError(UpstreamUnavailableError):
    def __init__(self):
        super().__init__("Email delivery is not configured", service="brevo")


class BrevoMailer:
    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.timeout = timeout
        # Sends are not idempotent.
        self.session = session or build_session(total_retries=0)

    def send(self, to_email: str, subject: str, html_body: str, to_name: str = "") -> dict:
        if not (self.api_key and self.sender_email):
            raise MailerNotConfiguredError()

        payload = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": to_email, "name": to_name or ""}],
            "subject": subject,
            "htmlContent": html_body,
        }
        try:
            resp = self.session.post(
                SEND_URL,
                json=payload,
                headers={"api-key": self.api_key, "content-type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Brevo send failed: {e}")
            raise UpstreamUnavailableError("Email send failed", service="brevo") from e

        if resp.status_code >= 300:
            logger.error(f"Brevo send failed ({resp.status_code}): {resp.text[:500]}")
            raise UpstreamUnavailableError(
                f"Email send failed ({resp.status_code})", service="brevo"
            )

        try:
            return resp.json()
        except ValueError:
            return {}


def build_coupon_email(
    code: str,
    brand: str,
    expires_on: datetime,
    submitter_name: str = "",
    line_url: Optional[str] = None,
    site_url: Optional[str] = None,
) -> tuple:
    """Returns ``(subject, html)`` for the coupon thank-you email."""
    subject = f"[{brand}] Thanks for your review! Here is your coupon"
    greeting = f"Dear {html.escape(submitter_name)}," if submitter_name else "Dear customer,"

    links = []
    if line_url:
        url = html.escape(line_url, quote=True)
        links.append(f'LINE: <a href="{url}" target="_blank">{url}</a>')
    if site_url:
        url = html.escape(site_url, quote=True)
        links.append(f'Website: <a href="{url}" target="_blank">{url}</a>')
    contact = f"<p>Contact us:<br/>{'<br/>'.join(links)}</p>" if links else ""

    body = f"""
  <div style="font-family:Segoe UI,Helvetica,Arial,sans-serif;line-height:1.7;color:#222">
    <p>{greeting}</p>
    <p>Thank you for taking the time to share your experience with us.</p>
    <p>Here is your thank-you coupon:</p>
    <p style="font-size:18px"><strong>{html.escape(code)}</strong></p>
    <ul>
      <li>Show this code at checkout on your next booking.</li>
      <li>Valid until {expires_on:%Y-%m-%d}.</li>
      <li>One use only; not exchangeable for cash.</li>
    </ul>
    {contact}
    <p>We look forward to serving you again.<br/>{html.escape(brand)}</p>
  </div>"""
    return subject, body
