"""Registration exports (CSV, Excel, PDF)."""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ticketing.export import ExportConfig, ExportFilters, RegistrationExporter
from ticketing_api.deps import UserClaims, get_db, require_admin
from ticketing_api.schemas import ExportRequest

router = APIRouter(prefix="/exports", tags=["exports"])


@router.post("/registrations")
def export_registrations(
    body: ExportRequest,
    user: UserClaims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    config = ExportConfig(
        format=body.format,
        event_id=body.event_id,
        filters=ExportFilters(**body.filters.model_dump()),
        include_custom_fields=body.include_custom_fields,
        include_tickets=body.include_tickets,
        include_checkin_data=body.include_checkin_data,
        custom_field_selection=body.custom_field_selection,
    )
    result = RegistrationExporter(db).export(config)

    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Record-Count": str(result.record_count),
        },
    )
