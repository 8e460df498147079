import asyncio
import logging
from datetime import date

from sqlmodel import Session

from services.notification_service import config
from services.notification_service.clients import ServiceClientError, UserDirectoryClient
from services.notification_service.database import get_engine
from services.notification_service.engine import NotificationEngine
from services.notification_service.errors import PrivateError, PublicError
from services.notification_service.mailer import EmailDeliveryError, Mailer
from services.notification_service.models import LoanRequest
from services.notification_service.stores import FineStore, LoanStore, NotificationStore
from services.shared.messaging import consume_events


BINDING_KEYS = ["loan.created", "loan.returned"]

logger = logging.getLogger("notification-service")


def build_engine(session: Session) -> NotificationEngine:
    return NotificationEngine(
        LoanStore(session),
        FineStore(session),
        NotificationStore(session),
        UserDirectoryClient(),
        Mailer(),
    )


def handle_loan_created(engine: NotificationEngine, payload: dict) -> None:
    user_id = str(payload["user_id"])
    email = payload.get("email_guardian") or engine.users.get_user_info_by_id(user_id).guardian_email
    engine.notify_loan(
        LoanRequest(
            user_id=user_id,
            email_guardian=email,
            book_id=str(payload["book_id"]),
            book_name=payload.get("book_title") or payload.get("book_name", ""),
            loan_return=date.fromisoformat(str(payload["due_date"])[:10]),
        )
    )


def handle_loan_returned(engine: NotificationEngine, payload: dict) -> None:
    engine.return_book(str(payload["book_id"]), bool(payload.get("bad_condition", False)))


HANDLERS = {
    "loan.created": handle_loan_created,
    "loan.returned": handle_loan_returned,
}


def apply_event(event: dict) -> None:
    handler = HANDLERS.get(event["type"])
    if handler is None:
        logger.info("Ignoring event %s", event["type"])
        return
    with Session(get_engine()) as session:
        try:
            handler(build_engine(session), event["payload"])
        # KeyError and ValueError (pydantic ValidationError included) mean a bad payload.
        except (PublicError, PrivateError, ServiceClientError, EmailDeliveryError, KeyError, ValueError) as exc:
            logger.warning("Event %s not applied: %r", event["type"], exc)


async def event_handler(event: dict) -> None:
    # Database, user directory and SMTP calls all block; keep them off the event loop.
    await asyncio.to_thread(apply_event, event)


async def start_consumer():
    while True:
        try:
            await consume_events(
                config.AMQP_URL,
                queue_name="alerts-notification-queue",
                binding_keys=BINDING_KEYS,
                handler=event_handler,
            )
        except Exception as exc:  # pragma: no cover - resilience path
            logger.exception("Notification consumer crashed: %s", exc)
            await asyncio.sleep(5)
