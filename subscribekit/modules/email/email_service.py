"""
Email Service Module
====================

Configurable email service supporting Resend, Amazon SES, and SMTP (e.g. Gmail).
Provider is selected via EMAIL_PROVIDER config ('resend', 'ses', or 'smtp').
Every send attempt is recorded in the email_logs table of USER_DB.
"""

import re
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

import resend

from subscribekit.core import Database, get_config

# Rejects consecutive dots, leading/trailing dots in local part
_VALID_EMAIL = re.compile(r'^[a-zA-Z0-9_%+-]+(\.[a-zA-Z0-9_%+-]+)*@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}$')

logger = logging.getLogger(__name__)

# boto3 is only needed for the SES provider (pip install subscribekit[ses])
try:
    import boto3
    from botocore.exceptions import ClientError
    BOTO3_AVAILABLE = True
except ImportError:
    BOTO3_AVAILABLE = False
    logger.info("boto3 package not installed.")


class EmailDeliveryError(Exception):
    """Raised when the configured provider could not deliver a message"""


class EmailService:
    """
    Configurable email service supporting Resend, Amazon SES, and SMTP (e.g. Gmail).

    Configuration (set in Flask app.config or environment):
        EMAIL_PROVIDER: 'resend' (default), 'ses', or 'smtp'
        RESEND_API_KEY: Your Resend API key (required if provider is 'resend')
        AWS_REGION: AWS region for SES (default: 'eu-west-1', only needed if provider is 'ses')
        EMAIL_HOST: SMTP server host (default: 'smtp.gmail.com', only needed if provider is 'smtp')
        EMAIL_PORT: SMTP server port (default: 587, only needed if provider is 'smtp')
        EMAIL_PASSWORD: SMTP password/app password (required if provider is 'smtp')
        EMAIL_FROM: Default sender address
        EMAIL_REPLY_TO: Default reply-to address
        USER_DB: Path to SQLite database for email logs
    """

    def __init__(self, app=None):
        self.provider = 'resend'
        self.api_key = None
        self.ses_client = None
        self.smtp_host = None
        self.smtp_port = None
        self.smtp_password = None
        self.sender_email = None
        self.reply_to = None
        self.user_db = None

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize email service with Flask app configuration"""
        with app.app_context():
            self.provider = (get_config('EMAIL_PROVIDER', 'resend') or 'resend').lower()
            logger.info(f"=== INITIALIZING EMAIL SERVICE (provider: {self.provider}) ===")

            self.sender_email = get_config('EMAIL_FROM') or get_config('EMAIL_ADDRESS')
            self.reply_to = get_config('EMAIL_REPLY_TO')
            self.user_db = get_config('USER_DB')

            logger.info(f"Sender email: {self.sender_email}")

            # Only one provider is active at a time
            if self.provider == 'ses':
                self._init_ses()
            elif self.provider == 'smtp':
                self._init_smtp()
            else:
                self._init_resend()

    def _init_resend(self):
        """Initialize Resend provider"""
        self.api_key = get_config('RESEND_API_KEY')

        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured - email sending disabled")
            return

        resend.api_key = self.api_key
        logger.info("Resend API client initialized successfully")

    def _init_ses(self):
        """Initialize Amazon SES provider"""
        if not BOTO3_AVAILABLE:
            logger.error("boto3 package not installed - SES email sending disabled")
            return

        aws_region = get_config('AWS_REGION', 'eu-west-1')
        try:
            self.ses_client = boto3.client('ses', region_name=aws_region)
            logger.info(f"SES client initialized successfully (region: {aws_region})")
        except Exception as e:
            logger.error(f"Failed to initialize SES client: {e}")

    def _init_smtp(self):
        """Initialize SMTP provider (e.g. Gmail)"""
        self.smtp_host = get_config('EMAIL_HOST', 'smtp.gmail.com')
        self.smtp_port = int(get_config('EMAIL_PORT', 587))
        self.smtp_password = get_config('EMAIL_PASSWORD')

        if not self.smtp_password:
            logger.warning("EMAIL_PASSWORD not configured - SMTP email sending disabled")
            return

        logger.info(f"SMTP configured: {self.smtp_host}:{self.smtp_port}")

    def is_configured(self) -> bool:
        """True when the active provider has what it needs to send"""
        if not self.sender_email:
            return False
        if self.provider == 'ses':
            return self.ses_client is not None
        if self.provider == 'smtp':
            return bool(self.smtp_password)
        return bool(self.api_key)

    def _log_email(self, recipient: str, subject: str, email_type: str,
                   status: str, error_message: str = None):
        """Log email attempt to database"""
        if not self.user_db:
            return
        try:
            with Database.connect(Database.ensure_dir(self.user_db)) as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS email_logs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        recipient TEXT NOT NULL,
                        subject TEXT NOT NULL,
                        email_type TEXT,
                        status TEXT NOT NULL,
                        error_message TEXT,
                        sent_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    INSERT INTO email_logs (recipient, subject, email_type, status, error_message)
                    VALUES (?, ?, ?, ?, ?)
                """, (recipient, subject, email_type, status, error_message))
                conn.commit()
        except Exception as e:
            logger.error(f"Failed to log email to database: {e}")

    def send_email(self, to: str, subject: str, html_body: str,
                   text_body: Optional[str] = None, sender: Optional[str] = None,
                   reply_to: Optional[str] = None, email_type: str = 'other') -> None:
        """
        Send a single email via the configured provider.

        Args:
            to: Recipient email address
            subject: Email subject
            html_body: HTML content of the email
            text_body: Plain text content (optional)
            sender: From address, defaults to EMAIL_FROM
            reply_to: Reply-To address, defaults to EMAIL_REPLY_TO
            email_type: Label stored in email_logs

        Raises:
            EmailDeliveryError: if the provider is misconfigured or rejected the message
        """
        sender = sender or self.sender_email
        reply_to = reply_to or self.reply_to

        if not sender:
            logger.error("Sender email not configured")
            raise EmailDeliveryError("Sender email not configured")

        if not to or not _VALID_EMAIL.match(to):
            logger.error(f"Refusing to send to invalid email address: {to}")
            raise EmailDeliveryError(f"Invalid recipient address: {to}")

        logger.info(f"Sending email from: {sender} to: {to}")
        logger.info(f"Subject: {subject}")

        try:
            if self.provider == 'ses':
                self._send_via_ses(to, subject, html_body, text_body, sender, reply_to)
            elif self.provider == 'smtp':
                self._send_via_smtp(to, subject, html_body, text_body, sender, reply_to)
            else:
                self._send_via_resend(to, subject, html_body, text_body, sender, reply_to)
        except Exception as send_error:
            logger.error(f"Error sending to {to}: {send_error}")
            self._log_email(to, subject, email_type, 'failed', str(send_error))
            if isinstance(send_error, EmailDeliveryError):
                raise
            raise EmailDeliveryError(str(send_error)) from send_error

        self._log_email(to, subject, email_type, 'sent', None)
        logger.info(f"Email sent successfully to {to}: {subject}")

    def _send_via_resend(self, recipient, subject, html_body, text_body, sender, reply_to):
        """Send a single email via Resend API"""
        if not self.api_key:
            raise EmailDeliveryError("Resend API key not configured")

        email_params = {
            "from": sender,
            "to": recipient,
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            email_params["text"] = text_body
        if reply_to:
            email_params["reply_to"] = reply_to

        r = resend.Emails.send(email_params)
        logger.info(f"Resend response: {r}")

        if not r or not r.get('id'):
            raise EmailDeliveryError(f"Resend error for {recipient}: {r}")
        logger.debug(f"Email sent successfully to: {recipient}, ID: {r['id']}")

    def _send_via_ses(self, recipient, subject, html_body, text_body, sender, reply_to):
        """Send a single email via Amazon SES"""
        if not BOTO3_AVAILABLE:
            raise EmailDeliveryError("boto3 package not installed")

        if not self.ses_client:
            raise EmailDeliveryError("SES client not initialized")

        body = {'Html': {'Charset': 'UTF-8', 'Data': html_body}}
        if text_body:
            body['Text'] = {'Charset': 'UTF-8', 'Data': text_body}

        kwargs = {
            'Source': sender,
            'Destination': {'ToAddresses': [recipient]},
            'Message': {
                'Subject': {'Charset': 'UTF-8', 'Data': subject},
                'Body': body,
            },
        }
        if reply_to:
            kwargs['ReplyToAddresses'] = [reply_to]

        try:
            response = self.ses_client.send_email(**kwargs)
        except ClientError as e:
            raise EmailDeliveryError(f"SES error for {recipient}: {e.response['Error']['Message']}") from e
        logger.info(f"SES response MessageId: {response.get('MessageId', '')}")

    def _send_via_smtp(self, recipient, subject, html_body, text_body, sender, reply_to):
        """Send a single email via SMTP (e.g. Gmail)"""
        if not self.smtp_password:
            raise EmailDeliveryError("SMTP password not configured")

        msg = MIMEMultipart('alternative')
        msg['From'] = sender
        msg['To'] = recipient
        msg['Subject'] = subject
        if reply_to:
            msg['Reply-To'] = reply_to

        if text_body:
            msg.attach(MIMEText(text_body, 'plain', 'utf-8'))
        msg.attach(MIMEText(html_body, 'html', 'utf-8'))

        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            server.starttls()
            server.login(sender, self.smtp_password)
            server.send_message(msg)

        logger.info(f"SMTP email sent to {recipient}")


# Global instance, configured by SubscribeKit.init_app
email_service = EmailService()
