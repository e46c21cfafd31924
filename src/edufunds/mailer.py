from __future__ import annotations

import smtplib
import time
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage

from edufunds.domain import ScheduledReminder
from edufunds.normalize import BERLIN
from edufunds.reminders import REMINDER_LEAD_LABELS, format_reminder_message


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: str
    password: str
    from_address: str
    starttls: bool = True
    use_ssl: bool = False


def build_reminder_subject(reminder: ScheduledReminder) -> str:
    lead = REMINDER_LEAD_LABELS[reminder.reminder_type]
    return f"[edufunds] Frist in {lead}: {reminder.program_title}"


def build_reminder_body(reminder: ScheduledReminder, now: datetime) -> str:
    lines: list[str] = []
    lines.append(format_reminder_message(reminder))
    lines.append("")
    lines.append(f"Programm-ID: {reminder.program_id}")
    lines.append(f"Frist laut Ausschreibung: {reminder.deadline}")
    lines.append(f"Versendet am: {now.astimezone(BERLIN):%d.%m.%Y %H:%M}")
    lines.append("")
    lines.append("Hinweis:")
    lines.append("- Fristen und Anforderungen bitte immer auf der offiziellen Seite des Fördergebers prüfen.")
    lines.append("- Erinnerungen lassen sich in den Benachrichtigungseinstellungen abbestellen.")
    return "\n".join(lines).rstrip() + "\n"


def build_failure_subject(now: datetime) -> str:
    return f"[edufunds][ERROR] {now.astimezone(BERLIN):%Y-%m-%d %H:%M}"


def build_failure_body(now: datetime, context_message: str) -> str:
    return (
        f"Zeitpunkt: {now.astimezone(BERLIN):%Y-%m-%d %H:%M:%S}\n"
        f"Fehler:\n{context_message}\n"
    )


def send_text_email(
    smtp_config: SmtpConfig,
    to_address: str,
    subject: str,
    body: str,
    max_attempts: int = 3,
    retry_wait_sec: float = 1.0,
) -> None:
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    message = EmailMessage()
    message["From"] = smtp_config.from_address
    message["To"] = to_address
    message["Subject"] = subject
    message.set_content(body)

    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            if smtp_config.use_ssl:
                with smtplib.SMTP_SSL(smtp_config.host, smtp_config.port, timeout=30) as smtp:
                    if smtp_config.user:
                        smtp.login(smtp_config.user, smtp_config.password)
                    smtp.send_message(message)
                return

            with smtplib.SMTP(smtp_config.host, smtp_config.port, timeout=30) as smtp:
                smtp.ehlo()
                if smtp_config.starttls:
                    smtp.starttls()
                    smtp.ehlo()
                if smtp_config.user:
                    smtp.login(smtp_config.user, smtp_config.password)
                smtp.send_message(message)
            return
        except (OSError, smtplib.SMTPException) as exc:
            last_error = exc
            if attempt >= max_attempts:
                break
            time.sleep(retry_wait_sec)
    if last_error is not None:
        raise last_error
