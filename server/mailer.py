import json
import logging
from typing import Callable, Mapping, Tuple
import requests
from server.config import config
from server.enums import OtpPurpose

logger = logging.getLogger(__name__)

# deliver(recipient, subject, body) -> (response, status_code)
Deliver = Callable[[str, str, str], Tuple[Mapping, int]]


def _get_mail_payload(recipient: str, subject: str, text: str) -> str:
    return json.dumps(
        {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": config.MAIL_FROM},
            "subject": subject,
            "content": [{"type": "text/plain", "value": text}],
        }
    )


def is_delivered(status_code: int) -> bool:
    return 200 <= status_code < 300


def send_email(to: str, subject: str, text: str) -> Tuple[Mapping, int]:
    """
    Sends a plain-text email through the configured HTTP mail API.

    Arguments:
        to (str): The recipient's email address.
        subject (str): The subject line.
        text (str): The message body.
    """
    if config.MAIL_DRY_RUN:
        logger.info(f"MAIL_DRY_RUN: would send '{subject}' to {to}")
        return {"status": "dry_run"}, 202

    if not (config.MAIL_API_KEY and config.MAIL_API_URL and to):
        logger.error("Missing mail configuration or recipient")
        return {"status": "error", "message": "Missing configuration"}, 500

    headers = {
        "Content-type": "application/json",
        "Authorization": f"Bearer {config.MAIL_API_KEY}",
    }

    try:
        resp = requests.post(
            config.MAIL_API_URL,
            data=_get_mail_payload(to, subject, text),
            headers=headers,
            timeout=config.MAIL_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        return {"status": "sent"}, resp.status_code

    except requests.Timeout:
        logger.error(f"Mail request to {to} timed out")
        return {"status": "error", "message": "Request timed out"}, 408

    except requests.RequestException as e:
        status_code = e.response.status_code if e.response is not None else 500
        logger.error(f"Mail send error for {to}: {e}")
        return {"status": "error", "message": "Failed to send message"}, status_code


def format_otp_message(purpose: OtpPurpose, code: str, ttl_minutes: int) -> Tuple[str, str]:
    if purpose == OtpPurpose.password_reset:
        subject = "Your password reset code"
        body = f"Use this code to reset your password: {code}\n"
    else:
        subject = "Verify your email"
        body = f"Your verification code is: {code}\n"
    body += f"\nThe code expires in {ttl_minutes} minutes. If you did not request it, ignore this email."
    return subject, body
