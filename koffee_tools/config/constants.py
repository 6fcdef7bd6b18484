"""Shared constants for the Koffee Karma Firestore migrations."""

from __future__ import annotations

from typing import Tuple

# Collections
DEFAULT_PLAYERS_COLLECTION = "players"
DEFAULT_REDEMPTION_SOURCE_COLLECTION = "redemptionCodes"
DEFAULT_REDEMPTION_TARGET_COLLECTION = "redemptionCodes_MIGRATED"

# Credentials
DEFAULT_SERVICE_ACCOUNT_PATH = "functions/serviceAccountKey.json"

# Batching
DEFAULT_BATCH_SIZE = 100
# Firestore rejects write batches with more than 500 operations.
FIRESTORE_MAX_BATCH_OPERATIONS = 500

# Redemption code schema defaults
MIGRATED_CODE_LABEL = "Migrated Code"
MIGRATED_CODE_MAX_REDEMPTIONS = 1
MIGRATED_CODE_PER_USER_LIMIT = 1

# Reputation ladder, ascending by minimum reputation.
REPUTATION_TITLES: Tuple[Tuple[int, str], ...] = (
    (0, "Parched"),
    (1, "Cold Pour"),
    (3, "The Initiate"),
    (5, "Keeper of the Drip"),
    (8, "Roast Prophet"),
    (12, "Foam Scryer"),
    (16, "Café Shade Mystic"),
    (20, "The Last Barista"),
)
