"""
Email Service

Plain-text hiring emails over SMTP. Delivery is best-effort: an
unconfigured or failing SMTP server never blocks the hiring flow.
"""

from email.mime.text import MIMEText
from typing import Optional, Dict, Any
import logging
import smtplib

logger = logging.getLogger(__name__)

class EmailService:
    """Email service for hiring notifications"""

    def __init__(self, smtp_host: Optional[str] = None, smtp_port: int = 587,
                 smtp_user: Optional[str] = None, smtp_password: Optional[str] = None,
                 from_email: Optional[str] = None, from_name: str = 'Fleet Hiring'):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.from_name = from_name

    @classmethod
    def from_config(cls, config) -> 'EmailService':
        return cls(
            smtp_host=config.get('SMTP_HOST'),
            smtp_port=int(config.get('SMTP_PORT') or 587),
            smtp_user=config.get('SMTP_USER'),
            smtp_password=config.get('SMTP_PASSWORD'),
            from_email=config.get('SMTP_FROM_EMAIL'),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send_email(self, to_email: str, subject: str, body: str) -> bool:
        """
        Send a plain-text email.

        Returns:
            bool: True if the SMTP server accepted the message
        """
        if not self.enabled:
            logger.debug(f"Email disabled, skipping '{subject}' to {to_email}")
            return False

        msg = MIMEText(body, 'plain')
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to_email
        msg['Subject'] = subject

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                server.starttls()
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg, from_addr=self.from_email, to_addrs=[to_email])
            logger.info(f"Email sent to {to_email}: {subject}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

    def send_hire_request_email(self, driver_email: str, driver_name: str, company_name: str,
                                job_details: Dict[str, Any], salary: Dict[str, Any]) -> bool:
        lines = [
            f"Hello {driver_name},",
            "",
            f"{company_name} has sent you a job offer.",
            "",
            f"Service type: {job_details.get('serviceType')}",
            f"Vehicle type: {job_details.get('vehicleType')}",
            f"Contract: {job_details.get('contractDuration')} {job_details.get('contractUnit')}",
            f"Accommodation: {'Yes' if job_details.get('accommodation') else 'No'}",
            f"Health insurance: {'Yes' if job_details.get('healthInsurance') else 'No'}",
            f"Pay: {salary.get('amount')} {salary.get('currency')} {salary.get('frequency')}",
        ]
        if job_details.get('description'):
            lines.extend(["", job_details['description']])
        lines.extend(["", "Open the app to view and respond to this offer."])
        return self.send_email(driver_email, f"New Job Opportunity from {company_name}", "\n".join(lines))

    def send_hire_response_email(self, company_email: str, company_name: str, driver_name: str,
                                 response: str, reason: str = '') -> bool:
        accepted = response == 'ACCEPTED'
        status_text = 'Accepted' if accepted else 'Rejected' if response == 'REJECTED' else 'Updated'
        lines = [
            f"Hello {company_name},",
            "",
            f"{driver_name} has responded to your hire request: {status_text}.",
        ]
        if reason:
            lines.extend(["", f"Reason: {reason}"])
        if accepted:
            lines.extend(["", f"{driver_name} is now listed among your employees."])
        return self.send_email(company_email, f"Hire Request {status_text} - {driver_name}", "\n".join(lines))
