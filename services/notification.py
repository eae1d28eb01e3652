"""
Notification service for sending emails.
Centralized SMTP handling for account emails (password recovery).
"""

import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from config import get_settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending emails via SMTP.
    Configuration loaded from centralized config module.
    """

    def __init__(self):
        """Initialize email service with configuration from centralized config."""
        settings = get_settings()
        self.smtp_server = settings.smtp_server
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.from_email = settings.email_from
        self.timeout = settings.store_timeout_seconds

    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        settings = get_settings()
        return settings.is_email_configured

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        plain_text: Optional[str] = None
    ) -> bool:
        """
        Send an HTML email.

        Args:
            to_email: Recipient email address
            subject: Email subject line
            html_content: HTML body content
            plain_text: Optional plain text fallback

        Returns:
            True if email sent successfully, False otherwise
        """
        if not self.is_configured():
            logger.error("Email service not configured. Missing credentials.")
            return False

        if not to_email:
            logger.error("Recipient email address is required.")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = self.from_email
            msg['To'] = to_email

            if plain_text:
                msg.attach(MIMEText(plain_text, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            logger.info(f"Sending email to {to_email}")
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email: {e}")
            return False

    def send_password_reset(self, to_email: str, reset_link: str, expires_minutes: int) -> bool:
        """Send a password recovery link."""
        html_content = f"""
        <html>
        <body>
            <h2>Reset your Dealbook password</h2>
            <p>Someone asked to reset the password for this account.
               Follow the link below to choose a new one.</p>
            <p><a href="{reset_link}">{reset_link}</a></p>
            <p>The link expires in {expires_minutes} minutes and can be used once.
               If you did not ask for this, ignore this email.</p>
        </body>
        </html>
        """
        plain_text = (
            "Reset your Dealbook password:\n"
            f"{reset_link}\n\n"
            f"The link expires in {expires_minutes} minutes."
        )
        return self.send_email(to_email, "Dealbook password reset", html_content, plain_text)
