"""
Audit log APIs (Admin): filtered listing and CSV/JSON export.
"""
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session, joinedload
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime, timezone
import csv
import io
import json

from database.models import AuditLog
from auth.dependencies import get_db_session, require_admin
from core.exceptions import InvalidInputError
from core.identity import Identity
from core.utils import audit_log_to_dict


router = APIRouter(prefix="/api/admin/logs", tags=["logs"])

EXPORT_COLUMNS = [
    "id", "createdAt", "userId", "userEmail", "action", "entity", "entityId", "details", "ipAddress", "userAgent",
]


class LogListResponse(BaseModel):
    """Log list response."""
    data: List[dict]
    total: int
    page: int
    limit: int


def _parse_timestamp(value: str, label: str) -> datetime:
    """ISO 8601 to naive UTC, matching how created_at is stored."""
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise InvalidInputError(f"Invalid {label} date format. Use ISO 8601 format.")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _filtered_query(
    db: Session,
    action: Optional[str],
    entity: Optional[str],
    user: Optional[int],
    from_date: Optional[str],
    to_date: Optional[str]
):
    query = db.query(AuditLog).options(joinedload(AuditLog.user))
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if entity:
        query = query.filter(AuditLog.entity == entity.upper())
    if user:
        query = query.filter(AuditLog.user_id == user)
    if from_date:
        query = query.filter(AuditLog.created_at >= _parse_timestamp(from_date, "from"))
    if to_date:
        query = query.filter(AuditLog.created_at <= _parse_timestamp(to_date, "to"))
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


@router.get("", response_model=LogListResponse)
async def list_logs(
    action: Optional[str] = Query(None),
    entity: Optional[str] = Query(None),
    user: Optional[int] = Query(None, alias="user"),
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """List audit log entries, newest first."""
    query = _filtered_query(db, action, entity, user, from_date, to_date)
    total = query.count()
    offset = (page - 1) * limit
    logs = query.offset(offset).limit(limit).all()

    return LogListResponse(
        data=[audit_log_to_dict(log) for log in logs],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/export")
async def export_logs(
    action: Optional[str] = Query(None),
    entity: Optional[str] = Query(None),
    user: Optional[int] = Query(None, alias="user"),
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    format: str = Query("csv", pattern="^(csv|json)$"),
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Export every matching entry (no pagination) as CSV or JSON."""
    logs = [audit_log_to_dict(log) for log in _filtered_query(db, action, entity, user, from_date, to_date).all()]
    stamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S')

    if format == "csv":
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(logs)
        return Response(
            content=output.getvalue(),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=audit_logs_{stamp}.csv"}
        )

    return Response(
        content=json.dumps(logs, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename=audit_logs_{stamp}.json"}
    )
