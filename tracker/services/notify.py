# tracker/services/notify.py
from __future__ import annotations

import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from .. import config
from ..schema import Appointment, Subject

logger = logging.getLogger(__name__)

REMINDER_EMAIL_SUBJECT = "Appointment Follow Up"


def _write_outbox(msg: EmailMessage, outbox_dir: Path) -> Path:
    outbox_dir.mkdir(parents=True, exist_ok=True)
    eml_path = outbox_dir / f"email_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.eml"
    with open(eml_path, "wb") as f:
        f.write(bytes(msg))
    return eml_path


def send_email(
    to: str | Iterable[str],
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
    outbox_dir: Optional[Path] = None,
) -> Tuple[bool, Optional[Dict[str, str]]]:
    """
    Sends an email. If SMTP creds are missing or SMTP fails, writes an .eml into the outbox
    and returns (False, {"eml_path": path, "error": "..."}). On success returns (True, None).
    Tries TLS on the configured port first, then SSL:465.
    """
    to_list = [to] if isinstance(to, str) else list(to)
    outbox = outbox_dir or config.OUTBOX_DIR

    # gmail app passwords are often pasted with spaces
    pwd = (config.SMTP_PASSWORD or "").replace(" ", "")

    msg = EmailMessage()
    msg["From"] = config.SMTP_FROM or config.SMTP_USERNAME or "no-reply@example.com"
    msg["To"] = ", ".join(to_list)
    msg["Subject"] = subject
    msg.set_content(text_body or "")
    if html_body:
        msg.add_alternative(html_body, subtype="html")

    if not (config.SMTP_USERNAME and pwd):
        eml_path = _write_outbox(msg, outbox)
        logger.info("SMTP credentials missing; wrote %s", eml_path)
        return (False, {"eml_path": str(eml_path), "error": "SMTP_USERNAME or SMTP_PASSWORD missing"})

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT or 587, timeout=25) as server:
            server.ehlo()
            if config.SMTP_USE_TLS:
                server.starttls()
                server.ehlo()
            server.login(config.SMTP_USERNAME, pwd)
            server.send_message(msg, to_addrs=to_list)
        return (True, None)
    except Exception as e_tls:
        try:
            with smtplib.SMTP_SSL(config.SMTP_HOST, 465, timeout=25) as server:
                server.login(config.SMTP_USERNAME, pwd)
                server.send_message(msg, to_addrs=to_list)
            return (True, None)
        except Exception as e_ssl:
            eml_path = _write_outbox(msg, outbox)
            logger.warning("SMTP delivery failed; wrote %s", eml_path)
            return (False, {
                "eml_path": str(eml_path),
                "error": f"TLS failed: {e_tls.__class__.__name__}: {e_tls}; SSL failed: {e_ssl.__class__.__name__}: {e_ssl}",
            })


def send_reminder_email(
    subject: Subject,
    appointment: Appointment,
    text: str,
    outbox_dir: Optional[Path] = None,
) -> Tuple[bool, Optional[Dict[str, str]]]:
    """Mail a drafted follow-up to the subject; subjects without an address are refused."""
    if not subject.email:
        return (False, {"error": f"Subject {subject.id} has no email address"})
    html = f"""
    <html>
      <body style="font-family:Arial,Helvetica,sans-serif;line-height:1.5">
        <p>{text}</p>
        <p>Appointment date: <b>{appointment.date.strftime('%d/%m/%Y')}</b></p>
        <p>Study Team</p>
      </body>
    </html>
    """
    return send_email(
        to=str(subject.email),
        subject=REMINDER_EMAIL_SUBJECT,
        text_body=text,
        html_body=html,
        outbox_dir=outbox_dir,
    )
