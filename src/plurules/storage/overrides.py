"""Repository for user override entries.

One row per ``<document_id>::<ZONE_CODE>`` key. Saving replaces the row
wholesale; deleting is the "reset to source values" action.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from plurules.core.types import UserOverrideEntry, UserOverrideValues
from plurules.pipeline.coerce import normalize_zone_code
from plurules.pipeline.overrides import override_key
from plurules.storage.db import get_session
from plurules.storage.models import UserOverrideRecord

logger = logging.getLogger(__name__)


async def load_override_entry(document_id: str, zone_code: str) -> UserOverrideEntry | None:
    """Fetch the stored entry for (document, zone), or None."""
    session: AsyncSession = await get_session()
    try:
        row = await session.get(UserOverrideRecord, override_key(document_id, zone_code))
        if row is None:
            return None
        return UserOverrideEntry(
            updated_at=row.updated_at.isoformat(),
            overrides=UserOverrideValues.from_dict(row.overrides),
        )
    finally:
        await session.close()


async def save_override_entry(document_id: str, zone_code: str, entry: UserOverrideEntry) -> None:
    """Insert or replace the entry for (document, zone)."""
    session: AsyncSession = await get_session()
    try:
        await session.merge(UserOverrideRecord(
            key=override_key(document_id, zone_code),
            document_id=document_id,
            zone_code=normalize_zone_code(zone_code) or zone_code,
            overrides=entry.overrides.to_dict(),
            updated_at=datetime.fromisoformat(entry.updated_at),
        ))
        await session.commit()
        logger.info(
            "Saved overrides for %s", override_key(document_id, zone_code),
            extra={"document_id": document_id, "zone_code": zone_code, "step": "save_overrides"},
        )
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def delete_override_entry(document_id: str, zone_code: str) -> bool:
    """Remove the entry for (document, zone). Returns False when none existed."""
    session: AsyncSession = await get_session()
    try:
        row = await session.get(UserOverrideRecord, override_key(document_id, zone_code))
        if row is None:
            return False
        await session.delete(row)
        await session.commit()
        logger.info(
            "Reset overrides for %s", override_key(document_id, zone_code),
            extra={"document_id": document_id, "zone_code": zone_code, "step": "reset_overrides"},
        )
        return True
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
