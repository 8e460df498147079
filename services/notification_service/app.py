import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlmodel import Session

from services.notification_service import config
from services.notification_service.clients import ServiceClientError, UserDirectoryClient
from services.notification_service.database import create_db, get_session
from services.notification_service.engine import NotificationEngine
from services.notification_service.errors import PrivateError, PublicError
from services.notification_service.events import start_consumer
from services.notification_service.mailer import EmailDeliveryError, Mailer
from services.notification_service.models import (
    FineRead,
    FineRequest,
    FinesPage,
    LoanRequest,
    NotificationRead,
    ReturnRequest,
)
from services.notification_service.stores import FineStore, LoanStore, NotificationStore


logger = logging.getLogger("notification-service")


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db()
    consumer = asyncio.create_task(start_consumer()) if config.RUN_EVENT_CONSUMER else None
    yield
    if consumer:
        consumer.cancel()


app = FastAPI(title="Alerts and Notifications Service", version="1.0.0", lifespan=lifespan)


def get_user_directory() -> UserDirectoryClient:
    return UserDirectoryClient()


def get_mailer() -> Mailer:
    return Mailer()


def get_notification_engine(
    session: Session = Depends(get_session),
    users: UserDirectoryClient = Depends(get_user_directory),
    mailer: Mailer = Depends(get_mailer),
) -> NotificationEngine:
    return NotificationEngine(
        LoanStore(session), FineStore(session), NotificationStore(session), users, mailer
    )


@app.exception_handler(PublicError)
async def public_error_handler(request: Request, exc: PublicError):
    status_code = 409 if exc.code == PublicError.LOAN_ALREADY_ACTIVE else 400
    return JSONResponse(status_code=status_code, content={"detail": exc.code})


@app.exception_handler(PrivateError)
async def private_error_handler(request: Request, exc: PrivateError):
    return JSONResponse(status_code=404, content={"detail": exc.code})


@app.exception_handler(ServiceClientError)
async def service_client_error_handler(request: Request, exc: ServiceClientError):
    logger.warning("User directory call failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(EmailDeliveryError)
async def email_delivery_error_handler(request: Request, exc: EmailDeliveryError):
    logger.error("Email delivery failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.get("/health")
def health():
    return {"status": "ok", "service": "alerts-notifications"}


@app.post("/loans/", status_code=status.HTTP_201_CREATED)
def notify_loan(payload: LoanRequest, engine: NotificationEngine = Depends(get_notification_engine)):
    loan = engine.notify_loan(payload)
    return {"loan_id": loan.id, "due_date": loan.due_date}


@app.delete("/loans/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_loan(book_id: str, user_id: str = Query(...), engine: NotificationEngine = Depends(get_notification_engine)):
    engine.close_loan(book_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/loans/{book_id}/return", status_code=status.HTTP_204_NO_CONTENT)
def return_book(
    book_id: str,
    payload: ReturnRequest,
    engine: NotificationEngine = Depends(get_notification_engine),
):
    engine.return_book(book_id, payload.bad_condition)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/fines/", status_code=status.HTTP_201_CREATED)
def open_fine(payload: FineRequest, engine: NotificationEngine = Depends(get_notification_engine)):
    fine = engine.open_fine(payload)
    return {"fine_id": fine.id, "description": fine.description, "status": fine.status}


@app.post("/fines/{fine_id}/close", status_code=status.HTTP_204_NO_CONTENT)
def close_fine(fine_id: int, engine: NotificationEngine = Depends(get_notification_engine)):
    engine.close_fine(fine_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/fines/active", response_model=FinesPage)
def list_active_fines(
    page_size: int = Query(default=15, ge=1, le=200),
    page_number: int = Query(default=0, ge=0),
    expired_date: Optional[date] = Query(default=None, alias="date"),
    engine: NotificationEngine = Depends(get_notification_engine),
):
    if expired_date is not None:
        return engine.return_all_active_fines_between_date(expired_date, page_size, page_number)
    return engine.return_all_active_fines(page_size, page_number)


@app.get("/users/{user_id}/fines", response_model=list[FineRead])
def list_user_fines(user_id: str, engine: NotificationEngine = Depends(get_notification_engine)):
    return engine.get_fines_by_user_id(user_id)


@app.get("/users/{user_id}/notifications", response_model=list[NotificationRead])
def list_user_notifications(user_id: str, engine: NotificationEngine = Depends(get_notification_engine)):
    return engine.get_notifications(user_id)
