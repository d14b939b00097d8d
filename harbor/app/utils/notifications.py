"""
Outbound email (Resend) and SMS (Twilio) notifications.

Delivery problems never fail the request that triggered them: every helper
logs and reports whether it sent anything.
"""
import logging
from typing import Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
REQUEST_TIMEOUT = 15


def send_email(to: str, subject: str, html: str) -> bool:
    """Send an email through Resend.

    Returns:
        True if the vendor accepted the message.
    """
    api_key = current_app.config.get('RESEND_API_KEY')
    if not api_key:
        logger.warning("RESEND_API_KEY not set, skipping email notification")
        return False

    try:
        response = requests.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json={
                "from": current_app.config.get('NOTIFICATION_FROM_EMAIL'),
                "to": [to],
                "subject": subject,
                "html": html
            },
            timeout=REQUEST_TIMEOUT
        )
        response.raise_for_status()
        logger.info(f"Email sent to {to}: {subject}")
        return True
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to send email to {to}: {e}")
        return False


def send_sms(to: str, body: str) -> bool:
    """Send a text message through Twilio."""
    sid = current_app.config.get('TWILIO_ACCOUNT_SID')
    token = current_app.config.get('TWILIO_AUTH_TOKEN')
    from_number = current_app.config.get('TWILIO_FROM_NUMBER')
    if not (sid and token and from_number):
        logger.warning("Twilio not configured, skipping SMS notification")
        return False

    try:
        response = requests.post(
            TWILIO_API_URL.format(sid=sid),
            auth=(sid, token),
            data={"From": from_number, "To": to, "Body": body},
            timeout=REQUEST_TIMEOUT
        )
        response.raise_for_status()
        logger.info(f"SMS sent to {to}")
        return True
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to send SMS to {to}: {e}")
        return False


def notify_join_request_decision(circle_name: str, decision: str,
                                 admin_response: Optional[str] = None,
                                 email: Optional[str] = None,
                                 phone: Optional[str] = None) -> bool:
    """Tell a requester whether they were let into a circle."""
    if decision == 'approved':
        headline = f"You're in! Your request to join {circle_name} was approved."
    else:
        headline = f"Your request to join {circle_name} was not approved."
    detail = f"\n\nMessage from the circle admins: {admin_response}" if admin_response else ""

    sent = False
    if email:
        html = f"<p>{headline}</p>" + (f"<p>{admin_response}</p>" if admin_response else "")
        sent = send_email(email, f"Update on your request to join {circle_name}", html) or sent
    if phone:
        sent = send_sms(phone, headline + detail) or sent
    return sent


def notify_intake_recording_ready(email: Optional[str], email_notifications: bool, session_id: str) -> bool:
    """Confirm to the owner that their intake recording was received."""
    if not email or not email_notifications:
        logger.info(f"Intake notification skipped for session {session_id}")
        return False
    return send_email(
        email,
        "We received your intake recording",
        "<p>Thank you for completing your intake. Your recording was received and our team "
        "will review it shortly.</p>"
    )
