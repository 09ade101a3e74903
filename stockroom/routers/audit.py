from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.deps import get_db
from stockroom.schemas.audit import AuditLogListOut, AuditLogOut
from stockroom.schemas.common import pagination_meta
from stockroom.services.audit_service import list_audit_events

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get(
    "",
    response_model=AuditLogListOut,
    summary="List audit log entries, newest first",
    responses=error_responses(422, 500),
)
def list_audit_logs(
    actor_id: str | None = Query(default=None),
    action: str | None = Query(default=None, description="For example purchase.update"),
    target_type: str | None = Query(default=None, description="item, purchase or day_end_report"),
    target_id: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = list_audit_events(
        db,
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return AuditLogListOut(
        items=[AuditLogOut.model_validate(row) for row in rows],
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(rows)),
    )
