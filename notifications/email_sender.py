"""
SMTP email sender for OpsWatch alerts.

Handles:
  - SMTP connection with TLS
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)

No external dependencies beyond Python stdlib (email, smtplib, ssl).
"""
import os
import ssl
import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from html import escape

logger = logging.getLogger("opswatch.notifications.email_sender")

_SEVERITY_COLORS = {"critical": "#FF1744", "warning": "#FFC107"}


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: OPSWATCH_SMTP_USER, OPSWATCH_SMTP_PASS
      2. Config file: config.email.smtp_username, config.email.smtp_password
    """

    def __init__(self, config: dict, timeout: float = 30):
        email_config = config.get("email", {})
        self.smtp_host = email_config.get("smtp_host", "smtp.gmail.com")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.from_address = email_config.get("from_address", "")
        self.to_address = email_config.get("to_address", "")
        self.from_name = email_config.get("from_name", "OpsWatch")
        self.timeout = timeout

        # Credential resolution: env vars take priority
        self.username = os.environ.get(
            "OPSWATCH_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "OPSWATCH_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return all([self.smtp_host, self.from_address, self.to_address,
                    self.username, self.password])

    def build_alert_message(self, alert) -> MIMEMultipart:
        severity = alert.severity.value
        status = "RESOLVED" if not alert.is_active else severity.upper()
        subject = f"[{status}] OpsWatch: {alert.title}"
        color = _SEVERITY_COLORS.get(severity, "#FFC107")

        details = "".join(
            f"<li><b>{escape(str(k))}</b>: {escape(str(v))}</li>"
            for k, v in sorted(alert.metadata.items())
        )
        html = f"""
        <div style="font-family: system-ui, sans-serif; max-width: 520px; margin: 0 auto;
                    padding: 20px; background: #FFFFFF; color: #1E272E; border-radius: 12px;">
            <h2 style="margin-top: 0;">OpsWatch alert</h2>
            <div style="background: #F0F1F6; padding: 16px; border-radius: 8px;
                        border-left: 4px solid {color};">
                <h3 style="margin-top: 0; color: {color};">{status}: {escape(alert.title)}</h3>
                <p>{escape(alert.message)}</p>
                <p style="color: #636E72;">Category: {escape(alert.category)} &middot;
                   seen {alert.occurrence_count} time(s) since {alert.created_at:%Y-%m-%d %H:%M} UTC</p>
                <ul>{details}</ul>
            </div>
        </div>
        """

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = self.to_address
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(f"{status}: {alert.title}\n{alert.message}", "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def send_alert(self, alert) -> bool:
        """Send a single alert email. Returns False when not configured."""
        if not self.is_configured():
            logger.debug("Email not configured - skipping alert")
            return False
        self._send(self.build_alert_message(alert))
        return True

    def _send(self, msg: MIMEMultipart):
        """Send a constructed MIME message. SMTP errors propagate to the channel."""
        context = ssl.create_default_context()
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=context)
                server.ehlo()
            server.login(self.username, self.password)
            server.send_message(msg)
        logger.info(f"Email sent to {self.to_address}: {msg['Subject']}")
