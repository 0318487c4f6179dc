import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
from decimal import Decimal
import logging

logger = logging.getLogger(__name__)


class EmailService:
    """Email service for sending referral program emails via SMTP."""

    def __init__(
        self,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "Shri Balaji Vastralya"
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.from_name = from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email over SMTP with STARTTLS.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body of the email
            text_content: Plain text body (optional fallback)

        Returns:
            True if email sent successfully, False otherwise
        """
        if not self.is_configured:
            logger.warning("Email not configured. SMTP credentials missing.")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if text_content:
                msg.attach(MIMEText(text_content, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, to_email, msg.as_string())

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP Authentication failed. Check email credentials.")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {e}")
            return False
        except TimeoutError:
            logger.error("SMTP connection timed out")
            return False
        except OSError as e:
            logger.error(f"Network error sending email: {e}")
            return False

    def _wrap(self, title: str, body: str) -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #8b1c1c;">{title}</h2>
                {body}
                <p style="color: #888; font-size: 12px;">{self.from_name} Referral Program</p>
            </div>
        </body>
        </html>
        """

    def send_commission_credited_email(
        self,
        to_email: str,
        referrer_name: str,
        amount: Decimal,
        order_amount: Decimal,
        maturity_days: int
    ) -> bool:
        """Tell a referrer a referred order earned them commission."""
        subject = f"You earned Rs.{amount} in referral commission"
        html = self._wrap("Commission credited", f"""
            <p>Hi {referrer_name},</p>
            <p>An order of Rs.{order_amount} placed with your referral code was delivered.
            Rs.{amount} has been added to your pending commission.</p>
            <p>It becomes available for withdrawal after the {maturity_days}-day return window.</p>
        """)
        text = (
            f"Hi {referrer_name}, Rs.{amount} commission credited for a delivered order "
            f"of Rs.{order_amount}. Withdrawable after {maturity_days} days."
        )
        return self.send_email(to_email, subject, html, text)

    def send_payout_requested_email(
        self,
        to_email: str,
        referrer_name: str,
        payout_number: str,
        amount: Decimal
    ) -> bool:
        subject = f"Payout request {payout_number} received"
        html = self._wrap("Payout request received", f"""
            <p>Hi {referrer_name},</p>
            <p>We received your payout request <strong>{payout_number}</strong> for Rs.{amount}.
            It will be processed by our team shortly.</p>
        """)
        return self.send_email(to_email, subject, html)

    def send_payout_settled_email(
        self,
        to_email: str,
        referrer_name: str,
        payout_number: str,
        amount: Decimal,
        status: str,
        transaction_reference: Optional[str] = None
    ) -> bool:
        subject = f"Payout {payout_number} {status}"
        if status == "paid":
            detail = f"Rs.{amount} has been sent to your account."
            if transaction_reference:
                detail += f" Reference: {transaction_reference}."
        else:
            detail = f"Your payout of Rs.{amount} was {status}. The amount is back in your available balance."
        html = self._wrap(f"Payout {status}", f"""
            <p>Hi {referrer_name},</p>
            <p>{detail}</p>
        """)
        return self.send_email(to_email, subject, html)

    def send_liability_alert_email(
        self,
        to_email: str,
        account_id: str,
        amount: Decimal,
        order_id: Optional[str]
    ) -> bool:
        """Internal alert: a reversal could not be fully recovered."""
        subject = f"[Referral] Commission shortfall Rs.{amount} needs reconciliation"
        html = self._wrap("Commission shortfall", f"""
            <p>A reversal for order {order_id or '-'} could not be recovered from
            commission account {account_id}.</p>
            <p>Unrecovered amount: <strong>Rs.{amount}</strong></p>
        """)
        return self.send_email(to_email, subject, html)


def get_email_service() -> EmailService:
    """Get configured email service instance."""
    from referral_core.config import settings

    return EmailService(
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        from_email=settings.SMTP_FROM_EMAIL,
        from_name=settings.SMTP_FROM_NAME,
    )
