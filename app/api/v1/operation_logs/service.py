"""
Operation log for administrative actions. Written after the action's own transaction has
finished, so a failed log write never undoes or masks the action.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import OperationLog

logger = logging.getLogger(__name__)


def get_client_ip(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        # May hold a proxy chain; the first entry is the client
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "unknown"


async def log_operation(
    db: AsyncSession,
    user_id: Optional[int],
    action: str,
    module: str,
    description: Optional[str] = None,
    *,
    ip_address: Optional[str] = None,
) -> None:
    """Append and commit one operation log entry. Errors are logged, not raised."""
    entry = OperationLog(
        user_id=user_id,
        action=action,
        module=module,
        description=description,
        ip_address=ip_address,
        created_at=datetime.utcnow(),
    )
    db.add(entry)
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to write operation log: %s/%s", module, action)
