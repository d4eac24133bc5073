"""
Registration Management

Public form submission and the admin-side bulk operations.

Submission checks, in order:
1. Event capacity (rejected registrations do not hold a seat)
2. E-mail not yet used for the event (case-insensitive)
3. Phone number normalized with the registration rule
4. member_number custom fields: exactly 10 digits, a known member,
   and not yet used for the event
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ticketing.errors import (
    DuplicateRegistration,
    InvalidMemberNumber,
    NotFound,
    RegistrationClosed,
)
from ticketing.models import Event, Registration, RegistrationStatus
from ticketing.phone import normalize_phone_number
from ticketing.repository import TicketingRepository

logger = logging.getLogger(__name__)

MEMBER_NUMBER_TYPE = "member_number"
MEMBER_NUMBER_PATTERN = re.compile(r"^\d{10}$")


@dataclass
class RegistrationForm:
    participant_name: str
    participant_email: str | None = None
    phone_number: str | None = None
    custom_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchOutcome:
    """Per-id result of a bulk operation."""

    succeeded: list[UUID] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)

    def fail(self, registration_id: UUID, error: str) -> None:
        self.failed.append({"registration_id": str(registration_id), "error": error})

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": [str(i) for i in self.succeeded],
            "failed": self.failed,
            "success_count": len(self.succeeded),
            "failed_count": len(self.failed),
        }


def member_number_fields(event: Event) -> list[str]:
    return [
        f["name"]
        for f in (event.custom_fields or [])
        if f.get("type") == MEMBER_NUMBER_TYPE and f.get("name")
    ]


class RegistrationService:
    """Creates, reviews and deletes registrations."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TicketingRepository(db)

    def _get_event(self, event_id: UUID) -> Event:
        event = self.repo.get_event(event_id)
        if event is None:
            raise NotFound("Event not found")
        return event

    def _check_member_numbers(self, event: Event, custom_data: dict[str, Any]) -> None:
        for name in member_number_fields(event):
            value = custom_data.get(name)
            if value in (None, ""):
                continue

            member_number = str(value).strip()
            if not MEMBER_NUMBER_PATTERN.match(member_number):
                raise InvalidMemberNumber(
                    "Member number must be exactly 10 digits",
                    details={"field": name},
                )
            if not self.repo.member_exists(member_number):
                raise InvalidMemberNumber(
                    "This member number is not found in our database",
                    details={"field": name},
                )
            if self.repo.member_number_registered(event.id, name, member_number):
                raise DuplicateRegistration(
                    "This member number is already registered for this event. "
                    "Please use a different member number.",
                    details={"field": name},
                )
            custom_data[name] = member_number

    def register(self, event_id: UUID, form: RegistrationForm) -> Registration:
        """
        Validate and store a form submission (status pending).

        Raises:
            NotFound: unknown event
            RegistrationClosed: event is full
            DuplicateRegistration: e-mail or member number already used
            InvalidPhoneNumber / InvalidMemberNumber: malformed input
        """
        event = self._get_event(event_id)

        if event.max_participants and self.repo.count_active_registrations(event_id) >= event.max_participants:
            raise RegistrationClosed("Event is full")

        email = (form.participant_email or "").strip() or None
        if email and self.repo.email_registered(event_id, email):
            raise DuplicateRegistration(
                "This email address is already registered for this event. "
                "Please use a different email address.",
                details={"participant_email": email},
            )

        phone = (form.phone_number or "").strip()
        phone = normalize_phone_number(phone) if phone else None

        custom_data = dict(form.custom_data or {})
        self._check_member_numbers(event, custom_data)

        registration = self.repo.create_registration(
            event_id=event_id,
            participant_name=form.participant_name.strip(),
            participant_email=email,
            phone_number=phone,
            custom_data=custom_data,
        )
        logger.info(
            f"New registration for {event.name}",
            extra={"event_id": str(event_id), "registration_id": str(registration.id)},
        )
        return registration

    def delete(self, registration_id: UUID) -> None:
        """Delete a registration and its ticket."""
        registration = self.repo.get_registration(registration_id)
        if registration is None:
            raise NotFound("Registration not found")
        self.repo.delete_registration(registration)
        logger.info("Registration deleted", extra={"registration_id": str(registration_id)})

    def batch_delete(self, registration_ids: list[UUID]) -> BatchOutcome:
        outcome = BatchOutcome()
        for registration_id in registration_ids:
            try:
                self.delete(registration_id)
            except NotFound as e:
                outcome.fail(registration_id, e.message)
                continue
            outcome.succeeded.append(registration_id)
        return outcome

    def batch_approve(self, registration_ids: list[UUID], operator_id: UUID | None) -> BatchOutcome:
        """Approve every found registration; missing ids are reported as failed."""
        outcome = BatchOutcome()
        for registration_id in registration_ids:
            registration = self.repo.get_registration(registration_id)
            if registration is None:
                outcome.fail(registration_id, "Registration not found")
                continue
            self.repo.set_registration_status(
                registration, RegistrationStatus.APPROVED, processed_by=operator_id
            )
            outcome.succeeded.append(registration_id)

        logger.info(
            f"Batch approved {len(outcome.succeeded)} registrations",
            extra={"operator_id": str(operator_id), "errors": len(outcome.failed)},
        )
        return outcome
