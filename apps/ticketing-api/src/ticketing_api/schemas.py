"""
API Schemas

Request and response bodies. Responses read straight from ORM rows.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Events
# =============================================================================

class EventBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    event_date: datetime | None = None
    location: str | None = None
    dresscode: str | None = None
    max_participants: int | None = Field(default=None, ge=1)
    custom_fields: list[dict[str, Any]] = Field(default_factory=list)
    branding_config: dict[str, Any] = Field(default_factory=dict)
    whatsapp_enabled: bool = False


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    event_date: datetime | None = None
    location: str | None = None
    dresscode: str | None = None
    max_participants: int | None = Field(default=None, ge=1)
    custom_fields: list[dict[str, Any]] | None = None
    branding_config: dict[str, Any] | None = None
    whatsapp_enabled: bool | None = None


class EventResponse(EventBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    max_participants: int | None = None
    custom_fields: list[dict[str, Any]] | None = None
    branding_config: dict[str, Any] | None = None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Registrations and tickets
# =============================================================================

class RegistrationCreate(BaseModel):
    participant_name: str = Field(min_length=1, max_length=255)
    participant_email: str | None = None
    phone_number: str | None = None
    custom_data: dict[str, Any] = Field(default_factory=dict)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    registration_id: UUID
    qr_code: str
    short_code: str | None = None
    qr_image_url: str | None = None
    status: str
    issued_at: datetime
    checkin_at: datetime | None = None
    checkin_location: str | None = None
    whatsapp_sent: bool
    email_sent: bool


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    participant_name: str
    participant_email: str | None = None
    phone_number: str | None = None
    status: str
    custom_data: dict[str, Any] | None = None
    registered_at: datetime
    processed_at: datetime | None = None
    processed_by: UUID | None = None
    ticket: TicketResponse | None = None


# =============================================================================
# Functions
# =============================================================================

class NotificationOptionsIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    send_email: bool = Field(default=True, alias="sendEmail")
    send_whatsapp: bool = Field(default=True, alias="sendWhatsApp")


class RegistrationIdsRequest(BaseModel):
    registration_ids: list[UUID] = Field(min_length=1)


class BatchApproveRequest(RegistrationIdsRequest):
    # Tickets are issued and delivered only when at least one channel is on
    notification_options: NotificationOptionsIn | None = None


class GenerateTicketRequest(BaseModel):
    registration_id: UUID
    notification_options: NotificationOptionsIn | None = None


class SendTicketEmailRequest(BaseModel):
    participant_email: str
    participant_name: str
    event_name: str
    event_date: datetime | None = None
    event_location: str | None = None
    qr_code_data: str | None = None
    short_code: str | None = None
    qr_image_url: str | None = None
    registration_id: UUID | None = None


class SendWhatsAppTicketRequest(BaseModel):
    registration_id: UUID
    template_name: str | None = None
    language_code: str | None = None
    include_header: bool = True
    custom_date_format: str | None = None
    use_short_params: bool = False


class BlastRequest(BaseModel):
    action: str = "start"
    # Validated by the blast service so the error text matches every caller
    campaign_id: str | None = None
    recipients: list[UUID] | None = None


class CampaignIdsRequest(BaseModel):
    campaign_ids: list[UUID] = Field(min_length=1)


class RetryRequest(BaseModel):
    campaign_id: UUID | None = None
    recipient_ids: list[UUID] | None = None
    max_retries: int = Field(default=3, ge=1)
    delay_minutes: int = Field(default=5, ge=0)


# =============================================================================
# Check-in and exports
# =============================================================================

class CheckinRequest(BaseModel):
    code: str
    location: str | None = None
    notes: str | None = None


class ExportFiltersIn(BaseModel):
    status: Literal["pending", "approved", "rejected", "all"] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search_term: str | None = None
    checkin_status: Literal["checked_in", "not_checked_in", "all"] | None = None


class ExportRequest(BaseModel):
    event_id: UUID | None = None
    format: Literal["csv", "excel", "pdf"] = "csv"
    filters: ExportFiltersIn = Field(default_factory=ExportFiltersIn)
    include_custom_fields: bool = False
    include_tickets: bool = False
    include_checkin_data: bool = False
    custom_field_selection: list[str] | None = None
