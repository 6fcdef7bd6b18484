"""Command-line entry points for the migration scripts."""

from __future__ import annotations

import argparse
import logging
from typing import Any, Callable, Optional, Sequence

from koffee_tools.config import MigrationSettings
from koffee_tools.error_handling import CredentialError, MigrationError
from koffee_tools.logging_config import init_logging

from . import client as firestore_client
from .migrations import MIGRATIONS, run_migration

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


def _parse_paginated_args(description: str, argv: Optional[Sequence[str]]) -> Optional[argparse.Namespace]:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("service_account", help="Path to the Firebase service account key JSON file")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Number of documents per page and write batch (default: MIGRATION_BATCH_SIZE or 100)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the planned writes without committing them",
    )
    try:
        return parser.parse_args(argv)
    except SystemExit as exc:
        # --help still exits 0; usage errors map to the ordinary failure code.
        if exc.code == 0:
            raise
        return None


def run_job(
    job_name: str,
    settings: MigrationSettings,
    client_factory: Optional[ClientFactory] = None,
) -> int:
    """Connect, run the named job and map the outcome to an exit code."""
    factory = client_factory or firestore_client.connect
    job = MIGRATIONS[job_name](settings)

    try:
        client = factory(settings.service_account_path)
    except CredentialError as exc:
        logger.error("%s", exc.message, extra={"migration": job.name, "migration_error": exc})
        logger.error("Please ensure the path to your service account key is correct and the file is valid JSON.")
        return 1

    try:
        summary = run_migration(client, job)
    except MigrationError as exc:
        exc.context.migration = job.name
        logger.exception("%s failed: %s", job.name, exc.message, extra={"migration_error": exc})
        return 1
    except Exception as exc:
        logger.exception("%s failed unexpectedly: %s", job.name, exc)
        return 1
    return 0 if summary.succeeded else 1


def _settings_or_exit(**overrides: Any) -> Optional[MigrationSettings]:
    try:
        return MigrationSettings.from_env().with_overrides(**overrides)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return None


def migrate_player_data(argv: Optional[Sequence[str]] = None, client_factory: Optional[ClientFactory] = None) -> int:
    """Rename karmaBalance/karmaLegacy on every player document."""
    args = _parse_paginated_args("Rename legacy karma fields on player documents.", argv)
    if args is None:
        return 1
    init_logging()
    settings = _settings_or_exit(
        service_account_path=args.service_account,
        batch_size=args.batch_size,
        dry_run=args.dry_run,
    )
    if settings is None:
        return 1
    return run_job("migrate_player_data", settings, client_factory)


def update_player_titles(argv: Optional[Sequence[str]] = None, client_factory: Optional[ClientFactory] = None) -> int:
    """Recompute every player's title from its reputation."""
    args = _parse_paginated_args("Recompute player titles from reputation.", argv)
    if args is None:
        return 1
    init_logging()
    settings = _settings_or_exit(
        service_account_path=args.service_account,
        batch_size=args.batch_size,
        dry_run=args.dry_run,
    )
    if settings is None:
        return 1
    return run_job("update_player_titles", settings, client_factory)


def migrate_redemption_codes(client_factory: Optional[ClientFactory] = None) -> int:
    """Restructure redemption codes into the migrated collection."""
    init_logging()
    settings = _settings_or_exit()
    if settings is None:
        return 1
    exit_code = run_job("migrate_redemption_codes", settings, client_factory)
    if exit_code == 0:
        logger.info("Please verify the data in the '%s' collection.", settings.redemption_target_collection)
        logger.info("Your original '%s' collection has NOT been deleted.", settings.redemption_source_collection)
    return exit_code


def finalize_migration(client_factory: Optional[ClientFactory] = None) -> int:
    """Copy the migrated redemption codes back under the final collection name."""
    init_logging()
    settings = _settings_or_exit()
    if settings is None:
        return 1
    exit_code = run_job("finalize_migration", settings, client_factory)
    if exit_code == 0:
        logger.info("Please verify the data in the '%s' collection.", settings.redemption_source_collection)
        logger.info(
            "Once verified, you can manually delete the '%s' collection.",
            settings.redemption_target_collection,
        )
    return exit_code


def migrate_player_data_main() -> None:
    raise SystemExit(migrate_player_data())


def update_player_titles_main() -> None:
    raise SystemExit(update_player_titles())


def migrate_redemption_codes_main() -> None:
    raise SystemExit(migrate_redemption_codes())


def finalize_migration_main() -> None:
    raise SystemExit(finalize_migration())
