"""Events and registrations."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from basecore.storage import StorageBackend
from messaging_email.providers import EmailProvider
from messaging_email.service.ticket_email import TicketEmailSender
from messaging_whatsapp.providers import WhatsAppProvider
from messaging_whatsapp.service.ticket_sender import WhatsAppTicketSender
from ticketing.errors import NotFound, TicketingError
from ticketing.issuance import NotificationOptions, TicketIssuer
from ticketing.models import RegistrationStatus
from ticketing.registration import RegistrationForm, RegistrationService
from ticketing.repository import TicketingRepository
from ticketing_api.deps import (
    UserClaims,
    get_db,
    get_email_sender_address,
    get_mail_provider,
    get_storage_backend,
    get_whatsapp_provider,
    require_admin,
)
from ticketing_api.routers.functions import deliver_ticket
from ticketing_api.schemas import (
    BatchApproveRequest,
    EventCreate,
    EventResponse,
    EventUpdate,
    RegistrationCreate,
    RegistrationIdsRequest,
    RegistrationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


def _get_event_or_404(repo: TicketingRepository, event_id: UUID):
    event = repo.get_event(event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


# =============================================================================
# Events
# =============================================================================

@router.get("/events", response_model=list[EventResponse])
def list_events(db: Session = Depends(get_db)):
    """Public event list, upcoming first."""
    return TicketingRepository(db).list_events()


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: UUID, db: Session = Depends(get_db)):
    return _get_event_or_404(TicketingRepository(db), event_id)


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(
    body: EventCreate,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = TicketingRepository(db).create_event(**body.model_dump(), created_by=user.id)
    db.commit()
    db.refresh(event)
    logger.info(f"Event created: {event.name}", extra={"event_id": str(event.id), "by": user.email})
    return event


@router.put("/events/{event_id}", response_model=EventResponse)
def update_event(
    event_id: UUID,
    body: EventUpdate,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    repo = TicketingRepository(db)
    event = _get_event_or_404(repo, event_id)
    repo.update_event(event, **body.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(event)
    return event


# =============================================================================
# Registrations
# =============================================================================

@router.post(
    "/events/{event_id}/registrations",
    response_model=RegistrationResponse,
    status_code=201,
)
def register(event_id: UUID, body: RegistrationCreate, db: Session = Depends(get_db)):
    """Public registration form submission."""
    registration = RegistrationService(db).register(
        event_id,
        RegistrationForm(
            participant_name=body.participant_name,
            participant_email=body.participant_email,
            phone_number=body.phone_number,
            custom_data=body.custom_data,
        ),
    )
    db.commit()
    db.refresh(registration)
    return registration


@router.get("/events/{event_id}/registrations", response_model=list[RegistrationResponse])
def list_registrations(
    event_id: UUID,
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    checkin_status: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    repo = TicketingRepository(db)
    _get_event_or_404(repo, event_id)
    return repo.find_registrations(
        event_id=event_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        search_term=search,
        checkin_status=checkin_status,
    )


def _review(
    registration_id: UUID,
    status: RegistrationStatus,
    user: UserClaims,
    db: Session,
):
    repo = TicketingRepository(db)
    registration = repo.get_registration(registration_id)
    if registration is None:
        raise NotFound("Registration not found")
    repo.set_registration_status(registration, status, processed_by=user.id)
    db.commit()
    db.refresh(registration)
    logger.info(
        f"Registration {status.value}",
        extra={"registration_id": str(registration_id), "by": user.email},
    )
    return registration


@router.post("/registrations/{registration_id}/approve", response_model=RegistrationResponse)
def approve_registration(
    registration_id: UUID,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _review(registration_id, RegistrationStatus.APPROVED, user, db)


@router.post("/registrations/{registration_id}/reject", response_model=RegistrationResponse)
def reject_registration(
    registration_id: UUID,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _review(registration_id, RegistrationStatus.REJECTED, user, db)


@router.delete("/registrations/{registration_id}")
def delete_registration(
    registration_id: UUID,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete a registration along with its ticket."""
    RegistrationService(db).delete(registration_id)
    db.commit()
    logger.info("Registration deleted", extra={"registration_id": str(registration_id), "by": user.email})
    return {"success": True, "registration_id": str(registration_id)}


@router.post("/registrations/batch-delete")
def batch_delete_registrations(
    body: RegistrationIdsRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    outcome = RegistrationService(db).batch_delete(body.registration_ids)
    db.commit()
    return {"success": not outcome.failed, **outcome.to_dict()}


@router.post("/registrations/batch-approve")
async def batch_approve_registrations(
    body: BatchApproveRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    whatsapp: WhatsAppProvider = Depends(get_whatsapp_provider),
    mail: EmailProvider = Depends(get_mail_provider),
    sender_address: str = Depends(get_email_sender_address),
):
    """
    Approve registrations, then issue and deliver their tickets one by one.

    A registration whose ticket fails is still approved; the failure is
    reported under "tickets".
    """
    outcome = RegistrationService(db).batch_approve(body.registration_ids, user.id)
    db.commit()

    options = (
        NotificationOptions(
            send_email=body.notification_options.send_email,
            send_whatsapp=body.notification_options.send_whatsapp,
        )
        if body.notification_options
        else None
    )
    tickets = []
    if options and (options.send_email or options.send_whatsapp):
        issuer = TicketIssuer(db, storage)
        email_sender = TicketEmailSender(db, mail, sender_address)
        whatsapp_sender = WhatsAppTicketSender(db, whatsapp)
        for registration_id in outcome.succeeded:
            try:
                ticket = issuer.issue(registration_id)
                db.commit()
            except TicketingError as e:
                db.rollback()
                tickets.append({"registration_id": str(registration_id), "success": False, "error": e.message})
                continue
            db.refresh(ticket)
            notifications = await deliver_ticket(
                ticket.registration, ticket, options, email_sender, whatsapp_sender
            )
            tickets.append({
                "registration_id": str(registration_id),
                "success": True,
                "notifications": notifications,
            })

    return {"success": not outcome.failed, **outcome.to_dict(), "tickets": tickets}
