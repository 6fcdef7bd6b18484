"""Migration configuration.

Settings are resolved from environment variables with the defaults in
:mod:`koffee_tools.config.constants`. Command-line flags passed to the
scripts take precedence over anything resolved here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_PLAYERS_COLLECTION,
    DEFAULT_REDEMPTION_SOURCE_COLLECTION,
    DEFAULT_REDEMPTION_TARGET_COLLECTION,
    DEFAULT_SERVICE_ACCOUNT_PATH,
    FIRESTORE_MAX_BATCH_OPERATIONS,
)
from .env import parse_bool_env, parse_int_env, parse_str_env


@dataclass(frozen=True)
class MigrationSettings:
    """Resolved settings shared by every migration script."""
    service_account_path: str = DEFAULT_SERVICE_ACCOUNT_PATH
    batch_size: int = DEFAULT_BATCH_SIZE
    dry_run: bool = False
    players_collection: str = DEFAULT_PLAYERS_COLLECTION
    redemption_source_collection: str = DEFAULT_REDEMPTION_SOURCE_COLLECTION
    redemption_target_collection: str = DEFAULT_REDEMPTION_TARGET_COLLECTION

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "MigrationSettings":
        """Build settings from ``env`` (defaults to ``os.environ``).

        Raises:
            ValueError: If a numeric variable is malformed or out of range.
        """
        env = os.environ if env is None else env
        batch_size = parse_int_env(
            env.get("MIGRATION_BATCH_SIZE"),
            default=DEFAULT_BATCH_SIZE,
            min_value=1,
            max_value=FIRESTORE_MAX_BATCH_OPERATIONS,
            name="MIGRATION_BATCH_SIZE",
        )
        return cls(
            service_account_path=parse_str_env(
                env.get("KOFFEE_SERVICE_ACCOUNT_PATH"),
                default=DEFAULT_SERVICE_ACCOUNT_PATH,
            ),
            batch_size=batch_size,
            dry_run=bool(parse_bool_env(env.get("MIGRATION_DRY_RUN"), default=False)),
            players_collection=parse_str_env(
                env.get("PLAYERS_COLLECTION"),
                default=DEFAULT_PLAYERS_COLLECTION,
            ),
            redemption_source_collection=parse_str_env(
                env.get("REDEMPTION_SOURCE_COLLECTION"),
                default=DEFAULT_REDEMPTION_SOURCE_COLLECTION,
            ),
            redemption_target_collection=parse_str_env(
                env.get("REDEMPTION_TARGET_COLLECTION"),
                default=DEFAULT_REDEMPTION_TARGET_COLLECTION,
            ),
        )

    def with_overrides(
        self,
        *,
        service_account_path: Optional[str] = None,
        batch_size: Optional[int] = None,
        dry_run: Optional[bool] = None,
    ) -> "MigrationSettings":
        """Return a copy with command-line overrides applied."""
        updates = {}
        if service_account_path:
            updates["service_account_path"] = service_account_path
        if batch_size is not None:
            if not 1 <= batch_size <= FIRESTORE_MAX_BATCH_OPERATIONS:
                raise ValueError(
                    f"batch size must be between 1 and {FIRESTORE_MAX_BATCH_OPERATIONS} "
                    f"(got {batch_size})."
                )
            updates["batch_size"] = batch_size
        if dry_run:
            updates["dry_run"] = True
        return replace(self, **updates)


__all__ = ["MigrationSettings"]
