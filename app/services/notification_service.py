import logging
import re
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from html import escape
from typing import Any

from starlette.concurrency import run_in_threadpool
from twilio.rest import Client as TwilioSDKClient

from app.core.config import Settings, get_settings
from app.db.models import Company, Member, RequestStatus, Visitor, VisitRequest

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")

FOOTER = '<p style="color: #666; font-size: 12px;">This is an automated message from the visitor desk.</p>'


def strip_html(html: str) -> str:
    return _SPACE_RE.sub(" ", _TAG_RE.sub("", html)).strip()


def _panel(title: str, rows: list[tuple[str, Any]], colour: str = "#f8f9fa") -> str:
    lines = "".join(
        f"<p><strong>{escape(label)}:</strong> {escape(str(value))}</p>"
        for label, value in rows
        if value not in (None, "")
    )
    return (
        f'<div style="background-color: {colour}; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        f'<h3 style="margin-top: 0;">{escape(title)}</h3>{lines}</div>'
    )


def _document(heading: str, *parts: str) -> str:
    body = "".join(parts)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>{escape(heading)}</h2>{body}{FOOTER}</div>"
    )


class Notifier:
    """Email/SMS delivery. Every method returns a result dict and never raises."""

    def __init__(self, settings: Settings | None = None, sms_client: Any = None):
        self.settings = settings or get_settings()
        self._sms_client = sms_client

    def _twilio(self):
        if self._sms_client is None:
            self._sms_client = TwilioSDKClient(
                self.settings.TWILIO_ACCOUNT_SID,
                self.settings.TWILIO_AUTH_TOKEN,
            )
        return self._sms_client

    def _deliver_email(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=15) as server:
            server.starttls()
            server.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD)
            server.send_message(message)

    def _deliver_sms(self, to: str, body: str) -> str:
        result = self._twilio().messages.create(
            body=body,
            from_=self.settings.TWILIO_PHONE_NUMBER,
            to=to,
        )
        return result.sid

    async def send_email(self, to: str, subject: str, html: str, text: str | None = None) -> dict[str, Any]:
        if not self.settings.email_configured:
            logger.warning("Email service not configured, skipping mail to %s", to)
            return {"success": False, "message": "Email service not configured"}

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.settings.EMAIL_FROM_NAME, self.settings.SMTP_USER))
        message["To"] = to
        message["Message-ID"] = make_msgid()
        message.set_content(text or strip_html(html))
        message.add_alternative(html, subtype="html")

        try:
            await run_in_threadpool(self._deliver_email, message)
        except Exception as exc:
            logger.warning("Email sending failed to=%s error=%s", to, exc)
            return {"success": False, "error": str(exc)}
        logger.info("Email sent message_id=%s", message["Message-ID"])
        return {"success": True, "messageId": message["Message-ID"]}

    async def send_sms(self, to: str, body: str) -> dict[str, Any]:
        if not self.settings.sms_configured:
            logger.warning("SMS service not configured, skipping sms to %s", to)
            return {"success": False, "message": "SMS service not configured"}
        try:
            sid = await run_in_threadpool(self._deliver_sms, to, body)
        except Exception as exc:
            logger.warning("SMS sending failed to=%s error=%s", to, exc)
            return {"success": False, "error": str(exc)}
        logger.info("SMS sent sid=%s", sid)
        return {"success": True, "messageId": sid}

    async def notify_member_of_request(
        self, member: Member, visitor: Visitor, request: VisitRequest, company: Company
    ) -> dict[str, Any]:
        subject = f"New Visitor Request - {visitor.full_name}"
        text = (
            f"You have a new visitor request from {visitor.full_name} ({visitor.phone}) "
            f"for {request.purpose} at {company.name}. Please respond to the request."
        )
        html = _document(
            "New Visitor Request",
            _panel(
                "Visitor Details",
                [
                    ("Name", visitor.full_name),
                    ("Phone", visitor.phone),
                    ("Email", visitor.email),
                    ("Purpose", request.purpose),
                    ("Duration", f"{request.duration} minutes"),
                    ("Description", request.purpose_description),
                ],
            ),
            _panel("Company", [("Name", company.name), ("Location", company.location)], "#e3f2fd"),
            '<p style="color: #666;">Please log in to your dashboard to accept or decline this request.</p>',
        )

        results: dict[str, Any] = {}
        if member.email_notifications:
            results["email"] = await self.send_email(member.email, subject, html)
        if member.sms_notifications:
            results["sms"] = await self.send_sms(member.phone, text)
        return results

    async def notify_visitor_of_status(
        self, visitor: Visitor, request: VisitRequest, member: Member, company: Company
    ) -> dict[str, Any]:
        status = RequestStatus(request.status)
        details = [("Company", company.name), ("Host", member.full_name), ("Purpose", request.purpose)]

        if status == RequestStatus.accepted:
            subject = f"Visit Request Accepted - {company.name}"
            text = (
                f"Your visit request to {company.name} has been accepted by {member.full_name}. "
                "You can now proceed to the reception."
            )
            html = _document(
                "Visit Request Accepted!",
                _panel("Your visit has been approved", details + [("Duration", f"{request.duration} minutes")], "#d4edda"),
                _panel(
                    "Next Steps",
                    [
                        ("1", f"Proceed to the reception desk at {company.name}"),
                        ("2", "Show this message or your phone number to the security personnel"),
                        ("3", f"You will be directed to meet {member.full_name}"),
                    ],
                ),
            )
        elif status == RequestStatus.declined:
            subject = f"Visit Request Declined - {company.name}"
            text = f"Your visit request to {company.name} has been declined by {member.full_name}."
            html = _document(
                "Visit Request Declined",
                _panel("Your visit request has been declined", details + [("Reason", request.response_message)], "#f8d7da"),
                f'<p style="color: #666;">You can submit a new request at a later time or contact {escape(member.full_name)} directly.</p>',
            )
        elif status == RequestStatus.pending and request.response_action == "reschedule":
            proposed = request.scheduled_time.strftime("%d/%m/%Y %H:%M") if request.scheduled_time else "a later time"
            subject = f"Visit Rescheduled - {company.name}"
            text = f"{member.full_name} has proposed to meet you at {proposed} at {company.name}."
            html = _document(
                "Visit Rescheduled",
                _panel("A new time was proposed", details + [("Proposed time", proposed), ("Message", request.response_message)], "#fff3cd"),
            )
        elif status == RequestStatus.completed:
            duration = f"{request.total_duration} minutes" if request.total_duration is not None else "Unknown"
            exit_time = request.exited_at.strftime("%d/%m/%Y %H:%M") if request.exited_at else ""
            subject = f"Visit Completed - {company.name}"
            text = f"Your visit to {company.name} has been completed. Thank you for visiting!"
            html = _document(
                "Visit Completed",
                _panel(
                    "Thank you for visiting!",
                    details + [("Visit Duration", duration), ("Exit Time", exit_time)],
                    "#d1ecf1",
                ),
            )
        else:
            return {"success": False, "message": "Unknown status"}

        results: dict[str, Any] = {}
        if visitor.email:
            results["email"] = await self.send_email(visitor.email, subject, html)
        results["sms"] = await self.send_sms(visitor.phone, text)
        return results

    async def send_manual(self, channel: str, recipient: str, message: str, subject: str | None = None) -> dict[str, Any]:
        results: dict[str, Any] = {}
        if channel in ("email", "both"):
            results["email"] = await self.send_email(
                recipient,
                subject or "Notification from the visitor desk",
                f"<p>{escape(message)}</p>",
            )
        if channel in ("sms", "both"):
            results["sms"] = await self.send_sms(recipient, message)
        return results


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier
