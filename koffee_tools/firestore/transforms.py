"""Per-document transforms for the Koffee Karma migrations.

Every transform has the signature ``(doc_id, data) -> PlannedWrite | None``
and is pure: returning ``None`` means the document needs no write.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from koffee_tools.config.constants import (
    MIGRATED_CODE_LABEL,
    MIGRATED_CODE_MAX_REDEMPTIONS,
    MIGRATED_CODE_PER_USER_LIMIT,
    REPUTATION_TITLES,
)

from .operations import (
    SERVER_TIMESTAMP,
    DeleteField,
    PlannedWrite,
    SetField,
    UpdateOp,
    document_write,
)

logger = logging.getLogger(__name__)

Transform = Callable[[str, Mapping[str, Any]], Optional[PlannedWrite]]

# Legacy field -> current field on player documents.
PLAYER_FIELD_RENAMES = (
    ("karmaBalance", "karma"),
    ("karmaLegacy", "reputation"),
)


def _rename_field(
    doc_id: str,
    data: Mapping[str, Any],
    legacy: str,
    current: str,
) -> List[UpdateOp]:
    if legacy not in data:
        return []
    legacy_value = data[legacy]
    if current not in data or data[current] != legacy_value:
        logger.info("  Migrating %s (%r) for player %s", legacy, legacy_value, doc_id)
        return [SetField(current, legacy_value), DeleteField(legacy)]
    logger.info("  Deleting redundant %s for player %s", legacy, doc_id)
    return [DeleteField(legacy)]


def migrate_player_fields(doc_id: str, data: Mapping[str, Any]) -> Optional[PlannedWrite]:
    """Rename ``karmaBalance``/``karmaLegacy`` to ``karma``/``reputation``.

    A legacy field is always removed when present; the current field is only
    written when it is missing or holds a different value.
    """
    operations: List[UpdateOp] = []
    for legacy, current in PLAYER_FIELD_RENAMES:
        operations.extend(_rename_field(doc_id, data, legacy, current))
    if not operations:
        return None
    return PlannedWrite(target_id=doc_id, operations=tuple(operations))


def _is_native_timestamp(value: Any) -> bool:
    # Firestore returns DatetimeWithNanoseconds, a datetime subclass.
    return isinstance(value, datetime)


def _rebuild_redeemers(code: str, data: Mapping[str, Any]) -> tuple[int, List[Dict[str, Any]]]:
    redeemed_by = data.get("redeemedBy")
    if not redeemed_by:
        return 0, []

    timestamp = data.get("redeemedTimestamp")
    if not timestamp and data.get("updatedAt"):
        timestamp = data.get("updatedAt")
        logger.info("  -> Using updatedAt for redemption timestamp for code %s", code)

    if _is_native_timestamp(timestamp):
        logger.info("  -> Added redeemer: %s", redeemed_by)
        return 1, [{"userId": redeemed_by, "timestamp": timestamp}]

    # redeemedCount stays 1 even though no redeemer entry can be recorded.
    logger.warning(
        "  -> Could not add redeemer for code %s due to missing/invalid data "
        "(redeemedBy: %s, timestamp: %r)",
        code,
        redeemed_by,
        data.get("redeemedTimestamp"),
    )
    return 1, []


def restructure_redemption_code(doc_id: str, data: Mapping[str, Any]) -> Optional[PlannedWrite]:
    """Rewrite a legacy redemption code into the multi-redemption schema.

    The new document is keyed by the legacy ``code`` field; documents without
    one are skipped.
    """
    raw_code = data.get("code")
    if not raw_code:
        logger.warning("Skipping document with ID %s as it lacks a 'code' field.", doc_id)
        return None
    code = str(raw_code)
    logger.info("Processing code: %s (Old ID: %s)", code, doc_id)

    redeemed_count, redeemers = _rebuild_redeemers(code, data)
    document = {
        "code": code,
        "label": MIGRATED_CODE_LABEL,
        "karmaValue": data.get("karmaValue") or 0,
        "maxRedemptions": MIGRATED_CODE_MAX_REDEMPTIONS,
        "redeemedCount": redeemed_count,
        "redeemers": redeemers,
        "perUserLimit": MIGRATED_CODE_PER_USER_LIMIT,
        "expiresAt": None,
        "activeFrom": None,
        "createdAt": data.get("createdAt") or SERVER_TIMESTAMP,
        "updatedAt": data.get("updatedAt") or SERVER_TIMESTAMP,
    }
    return document_write(code, document)


def copy_document(doc_id: str, data: Mapping[str, Any]) -> PlannedWrite:
    """Copy a document verbatim under the same id."""
    logger.info("  -> Preparing to copy document: %s", doc_id)
    return document_write(doc_id, data)


def title_for_reputation(reputation: float) -> str:
    """Return the highest title whose minimum reputation is reached."""
    for min_reputation, title in reversed(REPUTATION_TITLES):
        if reputation >= min_reputation:
            return title
    return REPUTATION_TITLES[0][1]


def refresh_player_title(doc_id: str, data: Mapping[str, Any]) -> Optional[PlannedWrite]:
    """Bring a player's ``title`` in line with its ``reputation``."""
    reputation = data.get("reputation") or 0
    current_title = data.get("title")
    correct_title = title_for_reputation(reputation)
    if current_title == correct_title:
        return None
    logger.info(
        "Player %s (%s): Current title %r, Correct title %r (Rep: %s). Scheduling update.",
        doc_id,
        data.get("name") or "N/A Name",
        current_title,
        correct_title,
        reputation,
    )
    return PlannedWrite(
        target_id=doc_id,
        operations=(SetField("title", correct_title), SetField("updatedAt", SERVER_TIMESTAMP)),
    )
