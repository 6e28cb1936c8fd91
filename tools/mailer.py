import os
import re
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Dict, Mapping, Optional
from loguru import logger

from graph.state import LeadInfo

WELCOME_EMAIL_SUBJECT = "Thanks for reaching out!"
WELCOME_EMAIL_BODY = """
Hi {NAME},

Thanks for your interest in our services! We're excited to learn more about your needs.

Your information:
• Company: {COMPANY}
• Phone: {PHONE}
• How you found us: {SOURCE}

Someone from our team will be in touch within 24 hours to discuss how we can help.

Best regards,
The Sales Team
"""
SENDER_DISPLAY_NAME = "Sales Team"

PLACEHOLDER = re.compile(r"\{([A-Z_]+)\}")
QUOTA_MARKERS = ("quota", "sending limit", "limit exceeded", "rate limit")

class MailError(RuntimeError):
    """Acknowledgement email could not be sent."""

class MailQuotaError(MailError):
    """The mail account hit its sending quota."""

def render_template(template: str, values: Mapping[str, str]) -> str:
    """
    Replace {KEY} placeholders with values.

    Unknown keys are left as they are. Values are inserted verbatim, with no
    HTML or other escaping.
    """
    def substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        return str(values[key]) if key in values else match.group(0)

    return PLACEHOLDER.sub(substitute, template)

def _is_quota_error(error: Exception) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in QUOTA_MARKERS)

class AcknowledgementMailer:
    """Sends the welcome email to a new lead over SMTP."""

    def __init__(self, sender_email: Optional[str] = None, app_password: Optional[str] = None,
                 smtp_server: Optional[str] = None, smtp_port: Optional[int] = None,
                 operator_email: Optional[str] = None):
        self._sender_email = sender_email
        self._app_password = app_password
        self._smtp_server = smtp_server
        self._smtp_port = smtp_port
        self._operator_email = operator_email

    def settings(self) -> Dict[str, Optional[str]]:
        sender = self._sender_email or os.getenv("SENDER_EMAIL")
        return {
            "sender_email": sender,
            "app_password": self._app_password or os.getenv("SENDER_APP_PASSWORD"),
            "smtp_server": self._smtp_server or os.getenv("SMTP_SERVER", "smtp.gmail.com"),
            "smtp_port": self._smtp_port or int(os.getenv("SMTP_PORT", "465")),
            "operator_email": self._operator_email or os.getenv("OPERATOR_EMAIL") or sender,
        }

    def build_message(self, lead: LeadInfo) -> EmailMessage:
        settings = self.settings()
        body = render_template(WELCOME_EMAIL_BODY, {
            "NAME": lead["name"],
            "COMPANY": lead["company"],
            "PHONE": lead["phone"],
            "SOURCE": lead["source"],
        })

        msg = EmailMessage()
        msg["Subject"] = WELCOME_EMAIL_SUBJECT
        msg["From"] = formataddr((SENDER_DISPLAY_NAME, settings["sender_email"] or ""))
        msg["To"] = lead["email"]
        if settings["operator_email"]:
            msg["Reply-To"] = settings["operator_email"]
        msg.set_content(body)
        return msg

    def email_prospect(self, lead: LeadInfo) -> None:
        """
        Send the welcome email to the lead. No retry is attempted here.

        Raises:
            MailQuotaError: the account's sending quota is exhausted
            MailError: any other failure, including missing credentials
        """
        settings = self.settings()
        if not settings["sender_email"] or not settings["app_password"]:
            raise MailError("Mail not configured. Set SENDER_EMAIL and SENDER_APP_PASSWORD.")

        msg = self.build_message(lead)

        try:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(settings["smtp_server"], settings["smtp_port"], context=context) as server:
                server.login(settings["sender_email"], settings["app_password"])
                server.send_message(msg)
        except Exception as e:
            if _is_quota_error(e):
                raise MailQuotaError(f"Mail quota exceeded: {e}") from e
            raise MailError(f"Email to {lead['email']} failed: {e}") from e

        logger.info(f"Welcome email sent to {lead['email']}")

# Global mailer instance
mailer = AcknowledgementMailer()

def email_prospect(lead: LeadInfo) -> None:
    """Send the welcome email using the global mailer."""
    mailer.email_prospect(lead)
