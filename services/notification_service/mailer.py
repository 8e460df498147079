import logging
import smtplib
from datetime import date
from enum import Enum
from pathlib import Path

from django.conf import settings
from django.core.mail import send_mail
from django.template import Context, Engine
from django.utils.html import strip_tags

from services.notification_service import config


if not settings.configured:
    settings.configure(
        EMAIL_BACKEND=config.EMAIL_BACKEND,
        EMAIL_HOST=config.EMAIL_HOST,
        EMAIL_PORT=config.EMAIL_PORT,
        EMAIL_HOST_USER=config.EMAIL_HOST_USER,
        EMAIL_HOST_PASSWORD=config.EMAIL_HOST_PASSWORD,
        EMAIL_USE_TLS=config.EMAIL_USE_TLS,
        DEFAULT_FROM_EMAIL=config.DEFAULT_FROM_EMAIL,
        USE_I18N=False,
    )

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
DATE_FORMAT = "%d/%m/%Y"

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the mail transport refuses or cannot deliver a message."""


class EmailTemplate(Enum):
    NOTIFICATION_ALERT = ("emails/notification_alert.html", "Notificación BiblioSoft", ("message",))
    FINE_ALERT = ("emails/fine_alert.html", "Alerta de multa", ("message", "amount", "date", "description"))

    def __init__(self, path: str, subject: str, arg_names: tuple[str, ...]):
        self.path = path
        self.subject = subject
        self.arg_names = arg_names


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def _format_arg(value) -> str:
    if isinstance(value, date):
        return format_date(value)
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


class Mailer:
    """Delivers guardian emails, either rendered from a template or as plain text."""

    def __init__(self, from_email: str | None = None):
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL
        self.engine = Engine(dirs=[str(TEMPLATES_DIR)])

    def render(self, template: EmailTemplate, *args) -> str:
        if len(args) != len(template.arg_names):
            raise ValueError(
                f"{template.name} expects {len(template.arg_names)} arguments, got {len(args)}"
            )
        context = dict(zip(template.arg_names, (_format_arg(arg) for arg in args)))
        return self.engine.get_template(template.path).render(Context(context))

    def send_templated(self, address: str, template: EmailTemplate, *args) -> None:
        html_message = self.render(template, *args)
        self._deliver(address, template.subject, strip_tags(html_message), html_message)

    def send_free_text(self, address: str, subject: str, body: str) -> None:
        self._deliver(address, subject, body)

    def _deliver(self, address: str, subject: str, body: str, html_message: str | None = None) -> None:
        try:
            send_mail(
                subject,
                body,
                self.from_email,
                [address],
                html_message=html_message,
                fail_silently=False,
            )
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"Could not deliver '{subject}' to {address}") from exc
        logger.info("Sent '%s' to %s", subject, address)
