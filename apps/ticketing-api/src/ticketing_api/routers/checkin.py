"""Check-in scanning and attendance report."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ticketing.checkin import DEFAULT_LOCATION, DEFAULT_NOTES, CheckinService
from ticketing.errors import NotFound
from ticketing.repository import TicketingRepository
from ticketing_api.deps import UserClaims, get_db, require_admin
from ticketing_api.schemas import CheckinRequest

router = APIRouter(tags=["checkin"])


@router.post("/checkin")
def check_in(
    body: CheckinRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Check a participant in by scanned QR payload or typed short code.

    A rejected scan is a normal answer (success false), not an HTTP error.
    """
    result = CheckinService(db).check_in(
        body.code,
        operator_id=user.id,
        location=body.location or DEFAULT_LOCATION,
        notes=body.notes or DEFAULT_NOTES,
    )
    if result.success:
        db.commit()

    return {
        "success": result.success,
        "message": result.message,
        "participant": result.participant,
        "ticket_id": str(result.ticket_id) if result.ticket_id else None,
    }


@router.get("/events/{event_id}/checkin-report")
def checkin_report(
    event_id: UUID,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = TicketingRepository(db).get_event(event_id)
    if event is None:
        raise NotFound("Event not found")
    return {"event_id": str(event_id), "event_name": event.name, **CheckinService(db).report(event_id)}
