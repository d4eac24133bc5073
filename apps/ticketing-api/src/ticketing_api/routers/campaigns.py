"""WhatsApp blast campaigns: creation from an uploaded recipient file, listing and deletion."""

import json
import logging
from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from basecore.settings import get_settings
from messaging_whatsapp.persistence.models import CampaignStatus
from messaging_whatsapp.persistence.repo import BlastRepository
from messaging_whatsapp.service.blast import campaign_summary
from ticketing.errors import InvalidRequest, NotFound, RecipientFileError, TicketingError
from ticketing.recipients import build_template_workbook, parse_recipient_file
from ticketing_api.deps import UserClaims, get_db, require_admin
from ticketing_api.schemas import CampaignIdsRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/template.xlsx")
def download_template(user: UserClaims = Depends(require_admin)):
    return Response(
        content=build_template_workbook(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="whatsapp_blast_template.xlsx"'},
    )


@router.post("", status_code=201)
async def create_campaign(
    name: str = Form(...),
    file: UploadFile = File(...),
    template_name: str | None = Form(None),
    template_params: str | None = Form(None),
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Create a draft campaign from a CSV/XLSX recipient file.

    template_params is a JSON object sent as a form field. Rows that fail
    validation are skipped and returned in "errors".
    """
    if not name.strip():
        raise InvalidRequest("Campaign name is required")

    try:
        params = json.loads(template_params) if template_params else {}
    except json.JSONDecodeError as e:
        raise InvalidRequest(f"template_params must be valid JSON: {e.msg}")
    if not isinstance(params, dict):
        raise InvalidRequest("template_params must be a JSON object")

    content = await file.read()
    parsed = parse_recipient_file(file.filename or "", content)
    if not parsed.recipients:
        raise RecipientFileError(
            "Tidak ada nomor telepon yang valid",
            details={"errors": [asdict(e) for e in parsed.errors]},
        )

    campaign = BlastRepository(db).create_campaign(
        name=name.strip(),
        template_name=template_name or get_settings().WHATSAPP_BLAST_TEMPLATE_NAME,
        template_params=params,
        recipients=[(r.phone_number, r.name) for r in parsed.recipients],
        created_by=user.id,
    )
    db.commit()

    logger.info(
        f"Campaign created: {campaign.name}",
        extra={
            "campaign_id": str(campaign.id),
            "recipients": len(parsed.recipients),
            "row_errors": len(parsed.errors),
        },
    )

    return {
        "success": True,
        "campaign": campaign_summary(campaign),
        "valid_recipients": len(parsed.recipients),
        "errors": [asdict(e) for e in parsed.errors],
    }


@router.get("/{campaign_id}")
def get_campaign(
    campaign_id: UUID,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    repo = BlastRepository(db)
    campaign = repo.get_campaign(campaign_id)
    if campaign is None:
        raise NotFound("Campaign not found")
    return {**campaign_summary(campaign), "recipients_status": repo.status_counts(campaign_id)}


@router.get("")
def list_campaigns(
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Campaigns, newest first."""
    return [campaign_summary(c) for c in BlastRepository(db).list_campaigns()]


def _delete_campaign(repo: BlastRepository, campaign_id: UUID) -> int:
    campaign = repo.get_campaign(campaign_id)
    if campaign is None:
        raise NotFound("Campaign not found")
    if campaign.status == CampaignStatus.SENDING.value:
        raise InvalidRequest(
            "Cannot delete a campaign that is currently sending",
            details={"campaign_id": str(campaign_id)},
        )
    return repo.delete_campaign(campaign)


@router.delete("/{campaign_id}")
def delete_campaign(
    campaign_id: UUID,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete a campaign and its recipients (not while it is sending)."""
    removed = _delete_campaign(BlastRepository(db), campaign_id)
    db.commit()
    logger.info(
        "Campaign deleted",
        extra={"campaign_id": str(campaign_id), "recipients": removed, "by": user.email},
    )
    return {"success": True, "campaign_id": str(campaign_id), "recipients_deleted": removed}


@router.post("/bulk-delete")
def bulk_delete_campaigns(
    body: CampaignIdsRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete several campaigns; sending or unknown ones are reported and kept."""
    repo = BlastRepository(db)
    deleted, failed = [], []
    for campaign_id in body.campaign_ids:
        try:
            _delete_campaign(repo, campaign_id)
        except TicketingError as e:
            failed.append({"campaign_id": str(campaign_id), "error": e.message})
            continue
        deleted.append(str(campaign_id))
    db.commit()
    return {"success": not failed, "deleted": deleted, "failed": failed}
