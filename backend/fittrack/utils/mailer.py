"""Outgoing account emails (welcome message, password-reset code).

Mail is best effort: when SMTP is not configured, or the server refuses
the message, the failure is logged and `send` returns False. Callers never
fail a request because of it.
"""

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from ..config import Settings

logger = logging.getLogger("fittrack.mailer")

_WELCOME_HTML = """
<div style="font-family: 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; max-width: 600px; margin: auto; color: #333;">
  <div style="background: linear-gradient(135deg, #3A7BD5 0%, #00D2FF 100%); padding: 30px 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">Welcome to FitTrack Pro</h1>
    <p style="color: rgba(255, 255, 255, 0.9);">Let's crush your fitness goals together!</p>
  </div>
  <div style="padding: 30px;">
    <p style="font-size: 18px; line-height: 1.6;">Hey <strong>{username}</strong>,<br>
    We're thrilled you've joined the FitTrack Pro community.</p>
    <p style="background: #F8F9FA; border-left: 4px solid #3A7BD5; padding: 15px;">
      <strong>Pro Tip:</strong> Complete your profile setup to get personalized recommendations.
    </p>
  </div>
  <div style="background: #F8F9FA; padding: 20px; text-align: center; font-size: 12px; color: #999;">
    &copy; {year} FitTrack Pro. All rights reserved.
  </div>
</div>
"""

_RESET_HTML = """
<div style="font-family: 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; max-width: 600px; margin: 0 auto; color: #1a1a1a;">
  <div style="background: linear-gradient(135deg, #3A7BD5 0%, #00D2FF 100%); padding: 30px 20px; text-align: center;">
    <h1 style="margin: 0; color: white; font-size: 24px;">Password Reset Request</h1>
  </div>
  <div style="padding: 30px;">
    <p>Hi <strong>{username}</strong>,</p>
    <p>We received a request to reset your FitTrack Pro password. Here's your verification code:</p>
    <div style="background: #F8F9FA; border: 1px dashed #3A7BD5; border-radius: 8px; padding: 20px; text-align: center; max-width: 300px; margin: 0 auto 30px;">
      <div style="font-size: 32px; font-weight: 700; letter-spacing: 2px; color: #3A7BD5;">{code}</div>
      <div style="font-size: 14px; color: #666;">Expires in {ttl_minutes} minutes</div>
    </div>
    <p>If you didn't request this, please ignore this email.</p>
  </div>
  <div style="background: #F8F9FA; padding: 20px; text-align: center; font-size: 12px; color: #999;">
    &copy; {year} FitTrack Pro. All rights reserved.
  </div>
</div>
"""


class Mailer:
    """SMTP sender built from `Settings`."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        """Send one message. Returns True when the SMTP server accepted it."""
        s = self.settings
        if not s.smtp_configured:
            logger.warning("smtp not configured; dropping mail to %s (%s)", to, subject)
            return False
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = s.MAIL_FROM
        msg["To"] = to
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))
        try:
            with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=30) as server:
                server.starttls()
                server.login(s.SMTP_USER, s.SMTP_PASSWORD)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.error("smtp authentication failed: %s", e)
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error("smtp send to %s failed: %s", to, e)
            return False
        logger.info("mail sent to %s (%s)", to, subject)
        return True

    def send_welcome(self, to: str, username: str) -> bool:
        year = datetime.now().year
        return self.send(
            to,
            "Welcome to FitTrack Pro - Your Fitness Journey Starts Here!",
            _WELCOME_HTML.format(username=username, year=year),
            f"Hello {username}!\n\nThanks for joining FitTrack Pro. Let's smash your goals!",
        )

    def send_reset_code(self, to: str, username: str, code: str, ttl_minutes: int) -> bool:
        year = datetime.now().year
        return self.send(
            to,
            "Your FitTrack Pro Password Reset Code",
            _RESET_HTML.format(username=username, code=code, ttl_minutes=ttl_minutes, year=year),
            f"Hello {username},\n\nYour FitTrack Pro password reset code is {code}.\n"
            f"It expires in {ttl_minutes} minutes. If you did not request this, ignore this email.",
        )
