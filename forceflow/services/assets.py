"""Resolve external identifiers to asset rows, creating them on first sight."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from forceflow.db import dialect_insert, utcnow
from forceflow.db_models import Asset

logger = logging.getLogger("forceflow.assets")


def resolve_asset(
    db: Session,
    *,
    code: str,
    callsign: Optional[str] = None,
    country_code: Optional[str] = None,
    asset_type: str = "aircraft",
) -> str:
    """Return the id of the asset for ``code``.

    A missing asset is inserted with ``ON CONFLICT DO NOTHING`` on the unique
    code, so two concurrent resolutions converge on a single row. A non-empty
    ``callsign`` overwrites the stored one; the country code is only set at
    creation. Runs inside the caller's transaction.
    """

    code = code.strip().upper()
    callsign = callsign.strip() if callsign and callsign.strip() else None
    now = utcnow()

    asset_id = db.execute(select(Asset.id).where(Asset.code == code)).scalar_one_or_none()
    if asset_id is None:
        stmt = (
            dialect_insert(db, Asset)
            .values(
                id=str(uuid4()),
                type=asset_type,
                code=code,
                callsign=callsign,
                country_code=country_code,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[Asset.code])
        )
        created = db.execute(stmt).rowcount == 1
        asset_id = db.execute(select(Asset.id).where(Asset.code == code)).scalar_one()
        if created:
            logger.info("Created %s asset %s (%s)", asset_type, code, callsign or "no callsign")
            return asset_id

    if callsign:
        db.execute(
            update(Asset)
            .where(Asset.id == asset_id)
            .values(callsign=callsign, updated_at=now)
        )
    return asset_id


__all__ = ["resolve_asset"]
