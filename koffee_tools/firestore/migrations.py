from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from google.cloud.firestore_v1.field_path import FieldPath

from koffee_tools.config import MigrationSettings
from koffee_tools.config.constants import DEFAULT_BATCH_SIZE
from koffee_tools.error_handling import (
    BatchCapacityError,
    BatchCommitError,
    CollectionReadError,
    ErrorCategory,
    ErrorContext,
    MigrationError,
)

from .operations import PlannedWrite, to_update_payload
from .transforms import (
    Transform,
    copy_document,
    migrate_player_fields,
    refresh_player_title,
    restructure_redemption_code,
)

logger = logging.getLogger(__name__)

PageCursor = Optional[str]


@dataclass(frozen=True)
class SourceDocument:
    id: str
    data: Mapping[str, Any]


@dataclass(frozen=True)
class Page:
    documents: Tuple[SourceDocument, ...]
    next_cursor: PageCursor
    is_last_page: bool

    @property
    def is_empty(self) -> bool:
        return not self.documents


def _to_source_document(snapshot: Any) -> SourceDocument:
    return SourceDocument(id=snapshot.id, data=snapshot.to_dict() or {})


def fetch_page(
    client: Any,
    collection_name: str,
    cursor: PageCursor = None,
    page_size: int = DEFAULT_BATCH_SIZE,
) -> Page:
    """Fetch the page of documents that follows ``cursor`` in id order."""
    if not collection_name:
        raise ValueError("collection_name must be a non-empty string")
    if page_size < 1:
        raise ValueError(f"page_size must be a positive integer (got {page_size})")

    collection = client.collection(collection_name)
    query = collection.order_by(FieldPath.document_id()).limit(page_size)
    if cursor is not None:
        query = query.start_after({FieldPath.document_id(): collection.document(cursor)})

    documents = tuple(_to_source_document(snapshot) for snapshot in query.stream())
    next_cursor = documents[-1].id if documents else cursor
    return Page(
        documents=documents,
        next_cursor=next_cursor,
        is_last_page=len(documents) < page_size,
    )


def fetch_all(client: Any, collection_name: str) -> List[SourceDocument]:
    """Read a whole collection in one pass."""
    if not collection_name:
        raise ValueError("collection_name must be a non-empty string")
    return [_to_source_document(snapshot) for snapshot in client.collection(collection_name).stream()]


class BatchWriter:
    """Stages planned writes into one atomic Firestore write batch."""

    def __init__(self, client: Any, collection_name: str, max_operations: Optional[int] = None) -> None:
        self._client = client
        self._collection = client.collection(collection_name)
        self._collection_name = collection_name
        self._batch = client.batch()
        self._max_operations = max_operations
        self._staged = 0

    def __len__(self) -> int:
        return self._staged

    def stage(self, write: PlannedWrite) -> None:
        if self._max_operations is not None and self._staged >= self._max_operations:
            raise BatchCapacityError(
                f"Batch for {self._collection_name} is full ({self._max_operations} operations)",
                capacity=self._max_operations,
                context=ErrorContext(collection=self._collection_name, document_id=write.target_id),
            )
        reference = self._collection.document(write.target_id)
        payload = to_update_payload(write.operations)
        if write.overwrite:
            self._batch.set(reference, payload)
        else:
            self._batch.update(reference, payload)
        self._staged += 1

    def commit(self) -> int:
        """Commit every staged write; returns the number of writes committed."""
        if not self._staged:
            return 0
        try:
            self._batch.commit()
        except Exception as exc:
            raise BatchCommitError(
                f"Failed to commit batch of {self._staged} writes to {self._collection_name}: {exc}",
                operation_count=self._staged,
                context=ErrorContext(collection=self._collection_name),
                cause=exc,
            ) from exc
        return self._staged


@dataclass(frozen=True)
class RunSummary:
    migration: str
    processed: int = 0
    migrated: int = 0
    skipped: int = 0
    errors: int = 0
    pages: int = 0
    aborted: bool = False

    def combine(self, other: "RunSummary") -> "RunSummary":
        return replace(
            self,
            processed=self.processed + other.processed,
            migrated=self.migrated + other.migrated,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
            pages=self.pages + other.pages,
            aborted=self.aborted or other.aborted,
        )

    @property
    def succeeded(self) -> bool:
        return not self.aborted

    def log(self) -> None:
        logger.info("--- Migration Summary (%s) ---", self.migration)
        logger.info("Total Documents Processed: %d", self.processed)
        logger.info("Documents Migrated/Updated: %d", self.migrated)
        logger.info("Documents Skipped: %d", self.skipped)
        logger.info("Errors Encountered (approx): %d", self.errors)
        if self.errors > 0:
            logger.warning("Please review the logs for errors. Some documents might not have been migrated.")


@dataclass(frozen=True)
class MigrationJob:
    """Configuration of one migration run."""
    name: str
    source_collection: str
    transform: Transform
    target_collection: Optional[str] = None
    page_size: int = DEFAULT_BATCH_SIZE
    paginate: bool = True
    dry_run: bool = False

    @property
    def destination(self) -> str:
        return self.target_collection or self.source_collection


class MigrationRunner:
    """Drives read -> transform -> write until the source is exhausted."""

    def __init__(self, client: Any, job: MigrationJob) -> None:
        self.client = client
        self.job = job

    def run(self) -> RunSummary:
        job = self.job
        logger.info(
            "Starting %s: %s -> %s%s",
            job.name,
            job.source_collection,
            job.destination,
            " (dry run)" if job.dry_run else "",
        )
        if job.paginate:
            summary = self._run_paginated()
        else:
            summary = self._run_single_batch()
        summary.log()
        return summary

    def _plan(self, documents: Tuple[SourceDocument, ...]) -> Tuple[List[PlannedWrite], RunSummary]:
        writes: List[PlannedWrite] = []
        for document in documents:
            write = self.job.transform(document.id, document.data)
            if write is not None:
                writes.append(write)
        page_summary = RunSummary(
            migration=self.job.name,
            processed=len(documents),
            migrated=len(writes),
            skipped=len(documents) - len(writes),
        )
        return writes, page_summary

    def _preview(self, writes: List[PlannedWrite]) -> None:
        for write in writes:
            logger.info(
                "  [DRY RUN] Would %s %s/%s fields=%s",
                "set" if write.overwrite else "update",
                self.job.destination,
                write.target_id,
                list(write.field_names),
            )

    def _stage(self, writes: List[PlannedWrite], max_operations: Optional[int]) -> BatchWriter:
        writer = BatchWriter(self.client, self.job.destination, max_operations=max_operations)
        for write in writes:
            writer.stage(write)
        return writer

    def _process_page(self, page: Page, page_number: int) -> RunSummary:
        logger.info("Processing batch of %d documents...", len(page.documents))
        writes, page_summary = self._plan(page.documents)
        page_summary = replace(page_summary, pages=1)
        if not writes:
            logger.info("  No updates needed in this batch.")
            return page_summary
        if self.job.dry_run:
            self._preview(writes)
            return page_summary

        writer = self._stage(writes, max_operations=self.job.page_size)
        try:
            writer.commit()
        except BatchCommitError as exc:
            exc.context.migration = self.job.name
            exc.context.page = page_number
            logger.error(
                "  Error committing batch: %s",
                exc.cause,
                extra={"migration_error": exc},
            )
            # An atomic batch hides which writes failed; attribute the whole page.
            return replace(page_summary, errors=page_summary.errors + len(page.documents))
        logger.info("  Batch committed successfully.")
        return page_summary

    def _abort(self, summary: RunSummary, error: MigrationError) -> RunSummary:
        logger.error(
            "An error occurred during the migration process: %s",
            error.cause or error.message,
            exc_info=True,
            extra={"migration_error": error},
        )
        return summary.combine(RunSummary(migration=self.job.name, errors=1, aborted=True))

    def _run_paginated(self) -> RunSummary:
        summary = RunSummary(migration=self.job.name)
        cursor: PageCursor = None
        while True:
            page_number = summary.pages + 1
            try:
                page = fetch_page(self.client, self.job.source_collection, cursor, self.job.page_size)
            except Exception as exc:
                return self._abort(
                    summary,
                    CollectionReadError(
                        f"Failed to read {self.job.source_collection} after cursor {cursor!r}: {exc}",
                        collection=self.job.source_collection,
                        context=ErrorContext(migration=self.job.name, page=page_number),
                        cause=exc,
                    ),
                )

            if page.is_empty:
                logger.info("No more documents found. Migration process complete.")
                return summary
            try:
                page_summary = self._process_page(page, page_number)
            except MigrationError as exc:
                exc.context.migration = self.job.name
                exc.context.page = page_number
                return self._abort(summary, exc)
            except Exception as exc:
                return self._abort(
                    summary,
                    MigrationError(
                        f"Failed to process page {page_number} of {self.job.source_collection}: {exc}",
                        category=ErrorCategory.DATA,
                        context=ErrorContext(
                            migration=self.job.name,
                            collection=self.job.source_collection,
                            page=page_number,
                        ),
                        cause=exc,
                    ),
                )
            summary = summary.combine(page_summary)
            cursor = page.next_cursor

    def _run_single_batch(self) -> RunSummary:
        try:
            documents = tuple(fetch_all(self.client, self.job.source_collection))
        except Exception as exc:
            raise CollectionReadError(
                f"Failed to read {self.job.source_collection}: {exc}",
                collection=self.job.source_collection,
                context=ErrorContext(migration=self.job.name),
                cause=exc,
            ) from exc

        if not documents:
            logger.info("No documents found in %s. Nothing to migrate.", self.job.source_collection)
            return RunSummary(migration=self.job.name)

        writes, summary = self._plan(documents)
        summary = replace(summary, pages=1)
        if not writes:
            return summary
        if self.job.dry_run:
            self._preview(writes)
            return summary

        # One uncapped batch; Firestore rejects it past its operation limit.
        writer = self._stage(writes, max_operations=None)
        committed = writer.commit()
        logger.info("%d documents written to %s.", committed, self.job.destination)
        return summary


def run_migration(client: Any, job: MigrationJob) -> RunSummary:
    """Run ``job`` against ``client`` and return its summary."""
    return MigrationRunner(client, job).run()


def player_data_job(settings: MigrationSettings) -> MigrationJob:
    return MigrationJob(
        name="migrate_player_data",
        source_collection=settings.players_collection,
        transform=migrate_player_fields,
        page_size=settings.batch_size,
        dry_run=settings.dry_run,
    )


def redemption_codes_job(settings: MigrationSettings) -> MigrationJob:
    return MigrationJob(
        name="migrate_redemption_codes",
        source_collection=settings.redemption_source_collection,
        target_collection=settings.redemption_target_collection,
        transform=restructure_redemption_code,
        paginate=False,
        dry_run=settings.dry_run,
    )


def finalize_job(settings: MigrationSettings) -> MigrationJob:
    return MigrationJob(
        name="finalize_migration",
        source_collection=settings.redemption_target_collection,
        target_collection=settings.redemption_source_collection,
        transform=copy_document,
        paginate=False,
        dry_run=settings.dry_run,
    )


def player_titles_job(settings: MigrationSettings) -> MigrationJob:
    return MigrationJob(
        name="update_player_titles",
        source_collection=settings.players_collection,
        transform=refresh_player_title,
        page_size=settings.batch_size,
        dry_run=settings.dry_run,
    )


MIGRATIONS: Dict[str, Callable[[MigrationSettings], MigrationJob]] = {
    "migrate_player_data": player_data_job,
    "migrate_redemption_codes": redemption_codes_job,
    "finalize_migration": finalize_job,
    "update_player_titles": player_titles_job,
}
