"""
Ticket and messaging operations

- generate-qr-ticket: issue a ticket, then deliver it by e-mail / WhatsApp
- send-ticket-email / send-whatsapp-ticket: deliver an issued ticket
- send-whatsapp-blast: start, create, batch or debug a campaign
- retry-whatsapp-blast: reschedule failed recipients
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from basecore.settings import get_settings
from basecore.storage import StorageBackend
from messaging_email.providers import EmailProvider
from messaging_email.service.ticket_email import TicketEmailRequest, TicketEmailSender
from messaging_whatsapp.persistence.repo import BlastRepository
from messaging_whatsapp.providers import WhatsAppProvider
from messaging_whatsapp.service.blast import (
    DEBUG_ACTIONS,
    BlastRunner,
    build_debug_report,
    parse_campaign_id,
    validate_action,
)
from messaging_whatsapp.service.retry import RetryScheduler
from messaging_whatsapp.service.ticket_sender import TicketSendOptions, WhatsAppTicketSender
from messaging_whatsapp.streams.producer import BlastJobProducer
from ticketing.errors import InvalidRequest, NotFound, TicketingError
from ticketing.issuance import NotificationOptions, TicketIssuer
from ticketing.models import Registration, Ticket
from ticketing_api.deps import (
    UserClaims,
    get_blast_producer,
    get_db,
    get_email_sender_address,
    get_mail_provider,
    get_storage_backend,
    get_whatsapp_provider,
    require_admin,
)
from ticketing_api.schemas import (
    BlastRequest,
    GenerateTicketRequest,
    RetryRequest,
    SendTicketEmailRequest,
    SendWhatsAppTicketRequest,
    TicketResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])


async def deliver_ticket(
    registration: Registration,
    ticket: Ticket,
    options: NotificationOptions,
    email_sender: TicketEmailSender,
    whatsapp_sender: WhatsAppTicketSender,
) -> dict[str, Any]:
    """
    Send a freshly issued ticket on every wanted channel.

    Delivery failures are reported, never raised: the ticket stays issued.
    """
    results: dict[str, Any] = {}
    event = registration.event

    if options.wants_email(registration):
        request = TicketEmailRequest(
            participant_email=registration.participant_email,
            participant_name=registration.participant_name,
            event_name=event.name,
            event_date=event.event_date,
            event_location=event.location,
            qr_code_data=ticket.qr_code,
            short_code=ticket.short_code,
            qr_image_url=ticket.qr_image_url,
            registration_id=registration.id,
        )
        try:
            response = await email_sender.send(request)
            results["email"] = {"sent": True, "email_id": response.get("email_id")}
        except TicketingError as e:
            logger.error(f"Email sending failed: {e}", extra={"registration_id": str(registration.id)})
            results["email"] = {"sent": False, "error": str(e)}
    else:
        results["email"] = {"sent": False, "skipped": True}

    if options.wants_whatsapp(registration):
        try:
            response = await whatsapp_sender.send(registration.id)
            results["whatsapp"] = {"sent": True, "message_id": response.get("message_id")}
        except TicketingError as e:
            logger.error(f"WhatsApp sending failed: {e}", extra={"registration_id": str(registration.id)})
            results["whatsapp"] = {"sent": False, "error": str(e)}
    else:
        results["whatsapp"] = {"sent": False, "skipped": True}

    return results


@router.post("/generate-qr-ticket")
async def generate_qr_ticket(
    body: GenerateTicketRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    whatsapp: WhatsAppProvider = Depends(get_whatsapp_provider),
    mail: EmailProvider = Depends(get_mail_provider),
    sender_address: str = Depends(get_email_sender_address),
):
    ticket = TicketIssuer(db, storage).issue(body.registration_id)
    db.commit()
    db.refresh(ticket)

    registration = ticket.registration
    options = (
        NotificationOptions(
            send_email=body.notification_options.send_email,
            send_whatsapp=body.notification_options.send_whatsapp,
        )
        if body.notification_options
        else NotificationOptions()
    )
    notifications = await deliver_ticket(
        registration,
        ticket,
        options,
        TicketEmailSender(db, mail, sender_address),
        WhatsAppTicketSender(db, whatsapp),
    )
    db.refresh(ticket)

    return {
        "success": True,
        "ticket": TicketResponse.model_validate(ticket).model_dump(mode="json"),
        "qr_image_url": ticket.qr_image_url,
        "notifications": notifications,
    }


@router.post("/send-ticket-email")
async def send_ticket_email(
    body: SendTicketEmailRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
    mail: EmailProvider = Depends(get_mail_provider),
    sender_address: str = Depends(get_email_sender_address),
):
    sender = TicketEmailSender(db, mail, sender_address)
    return await sender.send(TicketEmailRequest(**body.model_dump()))


@router.post("/send-whatsapp-ticket")
async def send_whatsapp_ticket(
    body: SendWhatsAppTicketRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
    whatsapp: WhatsAppProvider = Depends(get_whatsapp_provider),
):
    options = TicketSendOptions(
        template_name=body.template_name,
        language_code=body.language_code,
        include_header=body.include_header,
        custom_date_format=body.custom_date_format,
        use_short_params=body.use_short_params,
    )
    return await WhatsAppTicketSender(db, whatsapp).send(body.registration_id, options)


@router.post("/send-whatsapp-blast")
async def send_whatsapp_blast(
    body: BlastRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
    whatsapp: WhatsAppProvider = Depends(get_whatsapp_provider),
    producer: BlastJobProducer = Depends(get_blast_producer),
):
    settings = get_settings()

    if body.action in DEBUG_ACTIONS:
        campaign_id = parse_campaign_id(body.campaign_id) if body.campaign_id else None
        report = await build_debug_report(db, settings, whatsapp, campaign_id)
        return {"success": True, "debug_info": report}

    campaign_id = parse_campaign_id(body.campaign_id)
    action = validate_action(body.action)

    if action in ("start", "batch") and settings.WHATSAPP_PROVIDER == "meta":
        for name in ("WHATSAPP_ACCESS_TOKEN", "WHATSAPP_PHONE_NUMBER_ID"):
            if not getattr(settings, name):
                raise InvalidRequest(f"Missing required environment variable: {name}")

    if action == "create":
        return {
            "success": True,
            "message": 'Campaign created successfully. Use action "start" to begin sending messages.',
            "campaign_id": str(campaign_id),
        }

    if BlastRepository(db).get_campaign(campaign_id) is None:
        raise NotFound("Campaign not found")

    if action == "start":
        msg_id = producer.publish_blast_start(campaign_id, requested_by=user.email)
        logger.info(f"Campaign {campaign_id} queued", extra={"msg_id": msg_id, "by": user.email})
        return {
            "success": True,
            "message": "Campaign processing started",
            "campaign_id": str(campaign_id),
        }

    if not body.recipients:
        raise InvalidRequest("recipients array is required for batch processing")

    result = await BlastRunner(db, whatsapp).process_batch(campaign_id, body.recipients)
    return {
        "success": True,
        "message": "Batch processing completed",
        "campaign_id": str(campaign_id),
        **result.to_dict(),
    }


@router.post("/retry-whatsapp-blast")
def retry_whatsapp_blast(
    body: RetryRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
    producer: BlastJobProducer = Depends(get_blast_producer),
):
    return RetryScheduler(db, producer).run(
        campaign_id=body.campaign_id,
        recipient_ids=body.recipient_ids,
        max_retries=body.max_retries,
        delay_minutes=body.delay_minutes,
    )
