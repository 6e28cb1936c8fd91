import pytest
import os
import sys
import smtplib
from datetime import datetime
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tools.mailer import (
    AcknowledgementMailer, MailError, MailQuotaError, render_template,
    WELCOME_EMAIL_SUBJECT,
)

class TestRenderTemplate:

    def test_replaces_every_occurrence(self):
        assert render_template("{NAME} / {NAME} at {COMPANY}", {"NAME": "Ann", "COMPANY": "Acme"}) == "Ann / Ann at Acme"

    def test_unknown_placeholders_are_left(self):
        assert render_template("Hi {NAME}, {UNKNOWN}", {"NAME": "Ann"}) == "Hi Ann, {UNKNOWN}"

    def test_values_are_not_escaped(self):
        assert render_template("{COMPANY}", {"COMPANY": "<b>Acme & Co</b>"}) == "<b>Acme & Co</b>"

class TestAcknowledgementMailer:
    """Welcome email to the lead."""

    def setup_method(self):
        self.lead = {
            "name": "Sarah Johnson",
            "email": "sarah@techstart.com",
            "company": "TechStart Inc",
            "phone": "555-0456",
            "source": "Referral",
            "row": 3,
            "observed_at": datetime.now(),
        }
        self.mailer = AcknowledgementMailer(
            sender_email="sales@ourco.com",
            app_password="app-password",
            operator_email="operator@ourco.com",
        )

    def test_message(self):
        msg = self.mailer.build_message(self.lead)

        assert msg["Subject"] == WELCOME_EMAIL_SUBJECT
        assert msg["To"] == "sarah@techstart.com"
        assert msg["From"] == "Sales Team <sales@ourco.com>"
        assert msg["Reply-To"] == "operator@ourco.com"
        body = msg.get_content()
        assert "Hi Sarah Johnson," in body
        assert "Company: TechStart Inc" in body
        assert "Phone: 555-0456" in body
        assert "How you found us: Referral" in body

    def test_reply_to_defaults_to_sender(self, monkeypatch):
        monkeypatch.delenv("OPERATOR_EMAIL", raising=False)
        mailer = AcknowledgementMailer(sender_email="sales@ourco.com", app_password="pw")
        assert mailer.build_message(self.lead)["Reply-To"] == "sales@ourco.com"

    def test_sends_over_smtp(self):
        with patch("tools.mailer.smtplib.SMTP_SSL") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            self.mailer.email_prospect(self.lead)

        assert mock_smtp.call_args[0][:2] == ("smtp.gmail.com", 465)
        server.login.assert_called_once_with("sales@ourco.com", "app-password")
        server.send_message.assert_called_once()

    def test_quota_failure(self):
        with patch("tools.mailer.smtplib.SMTP_SSL") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            server.send_message.side_effect = smtplib.SMTPDataError(
                550, b"5.4.5 Daily user sending quota exceeded."
            )

            with pytest.raises(MailQuotaError):
                self.mailer.email_prospect(self.lead)

        server.send_message.assert_called_once()

    def test_other_failure_is_generic(self):
        with patch("tools.mailer.smtplib.SMTP_SSL") as mock_smtp:
            mock_smtp.side_effect = smtplib.SMTPServerDisconnected("Connection unexpectedly closed")

            with pytest.raises(MailError) as exc_info:
                self.mailer.email_prospect(self.lead)

        assert not isinstance(exc_info.value, MailQuotaError)
        assert mock_smtp.call_count == 1

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("SENDER_EMAIL", raising=False)
        monkeypatch.delenv("SENDER_APP_PASSWORD", raising=False)

        with patch("tools.mailer.smtplib.SMTP_SSL") as mock_smtp:
            with pytest.raises(MailError, match="not configured"):
                AcknowledgementMailer().email_prospect(self.lead)

        mock_smtp.assert_not_called()

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
