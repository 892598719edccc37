"""Device registry: push tokens per user.

Every write is keyed on the token value (or token + user) so the engine and
the registration endpoint can both write without coordinating; concurrent
writes to the same token resolve as last write wins.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.db import dialect_insert
from app.models.device_token import DevicePlatform, DeviceToken
from app.utils.datetime import naive_utc_now

logger = logging.getLogger("app.push.registry")


def token_preview(token: str) -> str:
    return f"{token[:20]}..."


def register_device(
    db: Session,
    user_id: str,
    token: str,
    platform: Any = DevicePlatform.unknown,
    device_info: Optional[Dict[str, Any]] = None,
) -> Tuple[DeviceToken, str]:
    """Register ``token`` for ``user_id``; returns the row and one of
    ``created`` / ``updated`` / ``reassigned``.

    The write is a single insert-or-update on the token. Re-registering an
    existing token moves it to ``user_id`` and reactivates it.
    """
    now = naive_utc_now()
    platform = DevicePlatform.from_value(platform)
    previous_owner = db.query(DeviceToken.user_id).filter(DeviceToken.token == token).scalar()

    stmt = dialect_insert(db, DeviceToken).values(
        id=str(uuid.uuid4()),
        user_id=user_id,
        token=token,
        platform=platform,
        device_info=device_info,
        is_active=True,
        created_at=now,
        last_used=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["token"],
        set_={
            "user_id": user_id,
            "platform": platform,
            "device_info": device_info,
            "is_active": True,
            "last_used": now,
        },
    )
    db.execute(stmt)
    db.commit()

    if previous_owner is None:
        action = "created"
    elif previous_owner != user_id:
        action = "reassigned"
        logger.info(f"Reassigned device token {token_preview(token)} from user {previous_owner} to {user_id}")
    else:
        action = "updated"

    device = db.query(DeviceToken).filter(DeviceToken.token == token).one()
    db.refresh(device)
    logger.info(f"Device token {action} for user {user_id} on {platform.value}")
    return device, action


def unregister_device(db: Session, user_id: str, token: str) -> bool:
    """Soft-deactivate ``token`` if it belongs to ``user_id``."""
    result = db.execute(
        update(DeviceToken)
        .where(DeviceToken.token == token, DeviceToken.user_id == user_id)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount > 0


def get_active_tokens(db: Session, user_id: str) -> List[str]:
    rows = db.query(DeviceToken.token).filter(
        DeviceToken.user_id == user_id,
        DeviceToken.is_active.is_(True),
    ).order_by(DeviceToken.last_used.desc()).all()
    return [row.token for row in rows]


def list_devices(db: Session, user_id: str) -> List[DeviceToken]:
    return db.query(DeviceToken).filter(
        DeviceToken.user_id == user_id
    ).order_by(DeviceToken.last_used.desc()).all()


def deactivate_token(db: Session, token: str) -> bool:
    """Mark a token inactive (reported invalid/unregistered by the gateway)."""
    result = db.execute(
        update(DeviceToken)
        .where(DeviceToken.token == token, DeviceToken.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.warning(f"Deactivated invalid token: {token_preview(token)}")
    return result.rowcount > 0


def touch_tokens(db: Session, tokens: Iterable[str]) -> int:
    """Bump ``last_used`` on tokens that just received a push."""
    tokens = list(tokens)
    if not tokens:
        return 0
    result = db.execute(
        update(DeviceToken)
        .where(DeviceToken.token.in_(tokens))
        .values(last_used=naive_utc_now())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


def deactivate_stale_tokens(db: Session, stale_days: int = 90) -> int:
    """Deactivate active tokens unused for more than ``stale_days``."""
    cutoff = naive_utc_now() - timedelta(days=stale_days)
    result = db.execute(
        update(DeviceToken)
        .where(DeviceToken.is_active.is_(True), DeviceToken.last_used < cutoff)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info(f"Deactivated {result.rowcount} device tokens unused for {stale_days}+ days")
    return result.rowcount


def get_device_stats(db: Session) -> Dict[str, Any]:
    total = db.query(func.count(DeviceToken.id)).scalar()
    active = db.query(func.count(DeviceToken.id)).filter(
        DeviceToken.is_active.is_(True)
    ).scalar()

    by_platform = db.query(
        DeviceToken.platform,
        func.count(DeviceToken.id)
    ).filter(
        DeviceToken.is_active.is_(True)
    ).group_by(DeviceToken.platform).all()

    return {
        "total_devices": total,
        "active_devices": active,
        "inactive_devices": total - active,
        "by_platform": {p.value: c for p, c in by_platform}
    }
