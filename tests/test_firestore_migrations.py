from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from google.auth.credentials import AnonymousCredentials
from google.cloud import firestore

from koffee_tools.error_handling import BatchCapacityError, BatchCommitError
from koffee_tools.firestore import migrations
from koffee_tools.firestore.operations import DeleteField, PlannedWrite, SetField
from koffee_tools.firestore.transforms import (
    copy_document,
    migrate_player_fields,
    restructure_redemption_code,
)
from tests.fake_firestore import FakeFirestoreClient


def _players(count: int) -> Dict[str, Dict[str, Any]]:
    return {f"player-{idx:03d}": {"karmaBalance": idx, "karmaLegacy": idx * 2} for idx in range(count)}


def _job(**overrides: Any) -> migrations.MigrationJob:
    params = {
        "name": "migrate_player_data",
        "source_collection": "players",
        "transform": migrate_player_fields,
        "page_size": 2,
    }
    params.update(overrides)
    return migrations.MigrationJob(**params)


def test_fetch_page_orders_by_document_id_and_advances_cursor() -> None:
    client = FakeFirestoreClient({"players": {"b": {}, "a": {}, "c": {}}})

    first = migrations.fetch_page(client, "players", None, page_size=2)
    second = migrations.fetch_page(client, "players", first.next_cursor, page_size=2)
    third = migrations.fetch_page(client, "players", second.next_cursor, page_size=2)

    assert [doc.id for doc in first.documents] == ["a", "b"]
    assert first.next_cursor == "b"
    assert not first.is_last_page
    assert [doc.id for doc in second.documents] == ["c"]
    assert second.is_last_page
    assert third.is_empty
    assert third.next_cursor == "c"
    assert client.collection("players").queries[0].order_by_args == "__name__"


@pytest.mark.parametrize(("collection", "page_size"), [("", 10), ("players", 0)])
def test_fetch_page_rejects_invalid_arguments(collection: str, page_size: int) -> None:
    with pytest.raises(ValueError):
        migrations.fetch_page(FakeFirestoreClient(), collection, None, page_size)


class _RecordingQuery:
    """Wraps a real SDK query and records it instead of streaming."""

    def __init__(self, query: Any, sink: List[Any]) -> None:
        self._query = query
        self._sink = sink

    def limit(self, count: int) -> "_RecordingQuery":
        return _RecordingQuery(self._query.limit(count), self._sink)

    def start_after(self, cursor: Any) -> "_RecordingQuery":
        return _RecordingQuery(self._query.start_after(cursor), self._sink)

    def stream(self):
        self._sink.append(self._query)
        return iter(())


class _RecordingCollection:
    def __init__(self, collection: Any, sink: List[Any]) -> None:
        self._collection = collection
        self._sink = sink

    def order_by(self, *args: Any, **kwargs: Any) -> _RecordingQuery:
        return _RecordingQuery(self._collection.order_by(*args, **kwargs), self._sink)

    def document(self, doc_id: str) -> Any:
        return self._collection.document(doc_id)


class _RecordingClient:
    def __init__(self, client: Any) -> None:
        self._client = client
        self.queries: List[Any] = []

    def collection(self, name: str) -> _RecordingCollection:
        return _RecordingCollection(self._client.collection(name), self.queries)


@pytest.fixture
def recording_client() -> _RecordingClient:
    return _RecordingClient(firestore.Client(project="koffee-karma", credentials=AnonymousCredentials()))


def test_fetch_page_builds_sdk_query_ordered_by_document_id(recording_client: _RecordingClient) -> None:
    page = migrations.fetch_page(recording_client, "players", None, page_size=3)

    assert page.is_empty
    query = recording_client.queries[0]._to_protobuf()
    assert query.order_by[0].field.field_path == "__name__"
    assert query.limit == 3
    assert len(query.start_at.values) == 0


def test_fetch_page_cursor_starts_after_document_reference(recording_client: _RecordingClient) -> None:
    migrations.fetch_page(recording_client, "players", "player-007", page_size=3)

    query = recording_client.queries[0]._to_protobuf()
    assert query.order_by[0].field.field_path == "__name__"
    assert query.limit == 3
    assert not query.start_at.before
    assert query.start_at.values[0].reference_value.endswith("/documents/players/player-007")


def test_pagination_visits_every_document_exactly_once() -> None:
    client = FakeFirestoreClient({"players": _players(7)})
    seen = []

    def record(doc_id: str, data: Dict[str, Any]):
        seen.append(doc_id)
        return None

    summary = migrations.run_migration(client, _job(transform=record, page_size=3))

    assert seen == sorted(_players(7))
    assert summary.processed == 7
    assert summary.pages == 3
    assert summary.skipped == 7
    assert client.batches == []


def test_paginated_run_renames_fields_and_batches_per_page() -> None:
    client = FakeFirestoreClient({"players": _players(5)})

    summary = migrations.run_migration(client, _job())

    assert summary.processed == 5
    assert summary.migrated == 5
    assert summary.errors == 0
    assert summary.succeeded
    assert len(client.batches) == 3
    assert all(len(batch.update_calls) <= 2 for batch in client.batches)
    for idx, (doc_id, data) in enumerate(sorted(client.documents("players").items())):
        assert data == {"karma": idx, "reputation": idx * 2}


def test_second_run_stages_no_writes() -> None:
    client = FakeFirestoreClient({"players": _players(4)})
    migrations.run_migration(client, _job())
    batches_after_first_run = len(client.batches)

    summary = migrations.run_migration(client, _job())

    assert summary.migrated == 0
    assert summary.skipped == 4
    assert len(client.batches) == batches_after_first_run


def test_commit_failure_counts_whole_page_and_continues() -> None:
    players = _players(4)
    players["player-001"] = {"name": "already migrated"}
    client = FakeFirestoreClient({"players": players})
    client.fail_commits = 1

    summary = migrations.run_migration(client, _job())

    # First page holds player-000 and player-001; only one needed a write.
    assert summary.errors == 2
    assert summary.migrated == 3
    assert summary.succeeded
    documents = client.documents("players")
    assert documents["player-000"] == {"karmaBalance": 0, "karmaLegacy": 0}
    assert documents["player-002"] == {"karma": 2, "reputation": 4}
    assert documents["player-003"] == {"karma": 3, "reputation": 6}


def test_failed_commit_leaves_page_untouched() -> None:
    client = FakeFirestoreClient({"players": _players(2)})
    client.fail_commits = 1
    before = {key: dict(value) for key, value in client.documents("players").items()}

    migrations.run_migration(client, _job())

    assert client.documents("players") == before


def test_read_failure_aborts_and_reports_summary(caplog: pytest.LogCaptureFixture) -> None:
    client = FakeFirestoreClient({"players": _players(4)})
    client.fail_reads_from = 2

    with caplog.at_level(logging.INFO):
        summary = migrations.run_migration(client, _job())

    assert summary.aborted
    assert not summary.succeeded
    assert summary.errors == 1
    assert summary.processed == 2
    assert "Migration Summary" in caplog.text


def test_transform_failure_aborts_and_reports_summary(caplog: pytest.LogCaptureFixture) -> None:
    client = FakeFirestoreClient({"players": _players(4)})

    def explode_on_second_page(doc_id: str, data: Dict[str, Any]):
        if doc_id == "player-002":
            raise TypeError("'>=' not supported between instances of 'str' and 'int'")
        return migrate_player_fields(doc_id, data)

    with caplog.at_level(logging.INFO):
        summary = migrations.run_migration(client, _job(transform=explode_on_second_page))

    assert summary.aborted
    assert summary.errors == 1
    assert summary.processed == 2
    assert summary.pages == 1
    assert "An error occurred during the migration process" in caplog.text
    assert "Migration Summary" in caplog.text
    assert client.documents("players")["player-002"] == {"karmaBalance": 2, "karmaLegacy": 4}


def test_dry_run_commits_nothing() -> None:
    client = FakeFirestoreClient({"players": _players(3)})
    before = {key: dict(value) for key, value in client.documents("players").items()}

    summary = migrations.run_migration(client, _job(dry_run=True))

    assert summary.migrated == 3
    assert client.batches == []
    assert client.documents("players") == before


def test_single_batch_run_writes_to_target_collection() -> None:
    stamp = datetime(2024, 5, 1, tzinfo=timezone.utc)
    client = FakeFirestoreClient(
        {
            "redemptionCodes": {
                "old-1": {"code": "A1", "karmaValue": 5},
                "old-2": {"code": "B2", "redeemedBy": "u1", "redeemedTimestamp": stamp},
                "old-3": {"karmaValue": 9},
            }
        }
    )
    job = _job(
        name="migrate_redemption_codes",
        source_collection="redemptionCodes",
        target_collection="redemptionCodes_MIGRATED",
        transform=restructure_redemption_code,
        paginate=False,
    )

    summary = migrations.run_migration(client, job)

    assert summary.processed == 3
    assert summary.migrated == 2
    assert summary.skipped == 1
    assert len(client.batches) == 1
    assert client.batches[0].commit_count == 1
    target = client.documents("redemptionCodes_MIGRATED")
    assert set(target) == {"A1", "B2"}
    assert target["A1"]["karmaValue"] == 5
    assert target["A1"]["redeemedCount"] == 0
    assert target["B2"]["redeemers"] == [{"userId": "u1", "timestamp": stamp}]
    assert "old-1" in client.documents("redemptionCodes")


def test_single_batch_commit_failure_propagates() -> None:
    client = FakeFirestoreClient({"source": {"a": {"x": 1}}})
    client.fail_commits = 1
    job = _job(source_collection="source", target_collection="target", transform=copy_document, paginate=False)

    with pytest.raises(BatchCommitError) as excinfo:
        migrations.run_migration(client, job)

    assert excinfo.value.operation_count == 1
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert client.documents("target") == {}


def test_single_batch_empty_collection_is_a_noop(fake_client) -> None:
    client = fake_client
    job = _job(source_collection="source", target_collection="target", transform=copy_document, paginate=False)

    summary = migrations.run_migration(client, job)

    assert summary.processed == 0
    assert summary.succeeded
    assert client.batches == []


def test_batch_writer_enforces_capacity() -> None:
    client = FakeFirestoreClient({"players": {"a": {}, "b": {}}})
    writer = migrations.BatchWriter(client, "players", max_operations=1)
    writer.stage(PlannedWrite("a", (SetField("karma", 1),)))

    with pytest.raises(BatchCapacityError):
        writer.stage(PlannedWrite("b", (SetField("karma", 2),)))
    assert len(writer) == 1


def test_batch_writer_translates_operations() -> None:
    client = FakeFirestoreClient({"players": {"a": {"karmaBalance": 3}}})
    writer = migrations.BatchWriter(client, "players")
    writer.stage(PlannedWrite("a", (SetField("karma", 3), DeleteField("karmaBalance"))))
    writer.stage(PlannedWrite("z", (SetField("karma", 1),), overwrite=True))

    assert writer.commit() == 2
    assert client.documents("players") == {"a": {"karma": 3}, "z": {"karma": 1}}
    assert client.batches[0].set_calls == [{"reference": "z", "data": {"karma": 1}}]


def test_batch_writer_commit_without_writes_is_noop(fake_client) -> None:
    client = fake_client
    writer = migrations.BatchWriter(client, "players")

    assert writer.commit() == 0
    assert client.batches[0].commit_count == 0


def test_registered_jobs_follow_settings() -> None:
    from koffee_tools.config import MigrationSettings

    settings = MigrationSettings(batch_size=50, dry_run=True)

    player_job = migrations.MIGRATIONS["migrate_player_data"](settings)
    finalize = migrations.MIGRATIONS["finalize_migration"](settings)

    assert player_job.page_size == 50
    assert player_job.paginate
    assert player_job.dry_run
    assert finalize.source_collection == "redemptionCodes_MIGRATED"
    assert finalize.destination == "redemptionCodes"
    assert not finalize.paginate
    assert sorted(migrations.MIGRATIONS) == [
        "finalize_migration",
        "migrate_player_data",
        "migrate_redemption_codes",
        "update_player_titles",
    ]
