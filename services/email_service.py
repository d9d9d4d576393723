from typing import Any, Dict, Optional, Tuple
import html
import logging
import smtplib
import os
from email.message import EmailMessage

import requests
from dotenv import load_dotenv

from services.stages import stage_label

load_dotenv()

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "0") or 0)
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", "Recruitment Team <no-reply@example.com>")
EMAIL_RELAY_URL = os.getenv("EMAIL_RELAY_URL", "")
INTERVIEW_BASE_URL = os.getenv("INTERVIEW_BASE_URL", "http://localhost:5173/ai-interview")

logger = logging.getLogger(__name__)

RESUME_PROCESSED = "resume_processed"
STAGE_CHANGE = "stage_change"
AI_INTERVIEW = "ai_interview"

# Dispatcher event kind -> email template
TEMPLATE_FOR_EVENT = {
    "notify_ingested": RESUME_PROCESSED,
    "notify_updated": RESUME_PROCESSED,
    "notify_stage_change": STAGE_CHANGE,
    "ai_interview": AI_INTERVIEW,
}

# Extra paragraph for stages the candidate should hear more about.
STAGE_MESSAGES = {
    "hr_screen": "Our HR team will be reviewing your profile and will contact you soon to schedule an initial screening.",
    "written_test": "Congratulations! You've been selected for the written test phase. You'll receive details about the test shortly.",
    "demo_schedule": "Great news! We'd like to schedule a demo session with you. Our team will reach out with available time slots.",
    "offer_letter": "Congratulations! We're pleased to extend an offer to join our team. You'll receive your official offer letter shortly.",
    "onboarding": "Welcome aboard! We're excited to have you join us. You'll receive onboarding information and next steps soon.",
}


def _wrap(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<h2>{title}</h2>{body}"
        "<p>Best regards,<br>The Recruitment Team</p>"
        "</body></html>"
    )


def render_email(template: str, context: Dict[str, Any]) -> Tuple[str, str]:
    """
    Build (subject, html) for a notification template.
    Context keys: candidate_name, job_position, old_stage, new_stage, interview_token.
    """
    name = html.escape(context.get("candidate_name") or "Candidate")
    position = html.escape(context.get("job_position") or "")
    position_part = f" for the <strong>{position}</strong> position" if position else ""

    if template == RESUME_PROCESSED:
        body = (
            f"<p>Dear {name},</p>"
            f"<p>Thank you for your application{position_part}. We have received your resume "
            "and our team will review it shortly.</p>"
        )
        return "Your Resume Has Been Received", _wrap("Application Received", body)

    if template == AI_INTERVIEW:
        token = context.get("interview_token")
        if not token:
            raise ValueError("interview_token is required for an AI interview invitation")
        link = f"{INTERVIEW_BASE_URL.rstrip('/')}/{token}"
        body = (
            f"<p>Dear {name},</p>"
            f"<p>You have been invited to complete an AI interview{position_part}.</p>"
            f"<p><a href=\"{link}\">Start your interview</a></p>"
            "<p>This link is unique to you. Please complete the interview at your earliest convenience.</p>"
        )
        return "AI Interview Invitation - Next Step in Your Application", _wrap("AI Interview Invitation", body)

    if template == STAGE_CHANGE:
        new_stage = context.get("new_stage")
        new_label = html.escape(stage_label(new_stage) or "the next stage")
        old_label = stage_label(context.get("old_stage"))
        body = f"<p>Dear {name},</p><p>Your application{position_part} has moved"
        if old_label:
            body += f" from <strong>{html.escape(old_label)}</strong>"
        body += f" to <strong>{new_label}</strong>.</p>"
        extra = STAGE_MESSAGES.get(new_stage)
        if extra:
            body += f"<p>{extra}</p>"
        return f"Application Update: Moving to {stage_label(new_stage) or new_stage}", _wrap("Application Update", body)

    raise ValueError(f"Unknown email template: {template}")


class EmailNotifier:
    """
    Notifier that emails the candidate.

    Delivery goes through the HTTP relay when EMAIL_RELAY_URL is set,
    otherwise through SMTP. With neither configured every send fails, which
    the dispatcher logs.
    """

    def __init__(
        self,
        relay_url: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.relay_url = EMAIL_RELAY_URL if relay_url is None else relay_url
        self.smtp_host = smtp_host or SMTP_HOST
        self.smtp_port = smtp_port or SMTP_PORT
        self.smtp_user = smtp_user or SMTP_USER
        self.smtp_password = smtp_password or SMTP_PASSWORD
        self.sender = sender or SMTP_FROM
        self.timeout = timeout

    def notify(self, candidate_id: str, event_kind: str, context: Dict[str, Any]) -> None:
        to_email = context.get("candidate_email")
        if not to_email:
            raise ValueError(f"No email address in notification context for candidate {candidate_id}")
        template = TEMPLATE_FOR_EVENT.get(event_kind)
        if template is None:
            raise ValueError(f"No email template for event {event_kind}")
        subject, body = render_email(template, context)
        self.send_email(to_email, subject, body)

    def send_email(self, to_email: str, subject: str, html_body: str) -> None:
        if self.relay_url:
            self._send_via_relay(to_email, subject, html_body)
        elif self.smtp_host and self.smtp_port and self.smtp_user and self.smtp_password:
            self._send_via_smtp(to_email, subject, html_body)
        else:
            raise RuntimeError("Email transport not configured (set EMAIL_RELAY_URL or SMTP_*)")
        logger.info("Email '%s' sent to %s", subject, to_email)

    def _send_via_relay(self, to_email: str, subject: str, html_body: str) -> None:
        response = requests.post(
            self.relay_url,
            json={"to": to_email, "subject": subject, "html": html_body, "from": self.sender},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise RuntimeError(f"Email relay returned {response.status_code}: {response.text}")

    def _send_via_smtp(self, to_email: str, subject: str, html_body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to_email
        msg.set_content("This message requires an HTML capable email client.")
        msg.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
            smtp.starttls()
            smtp.login(self.smtp_user, self.smtp_password)
            smtp.send_message(msg)
