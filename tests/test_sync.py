import logging

import pytest

from tasksync.errors import MalformedBatchError
from tasksync.repositories import InMemoryRepository
from tasksync.sync import SyncService

from .helpers import FlakyRepository, make_task, ts, wire_task


@pytest.fixture()
def service(repo):
    return SyncService(repo)


class TestBatchProcessing:
    def test_create_then_stale_delete(self, service):
        outcome = service.submit_batch([{"op": "create", "task": wire_task("a", "2024-01-01T00:00:00Z")}])
        assert len(outcome.results) == 1
        result = outcome.results[0]
        assert (result.op, result.id, result.applied, result.reason) == ("create", "a", True, None)
        assert result.server_task["id"] == "a"
        assert [t["id"] for t in outcome.server_state] == ["a"]

        # Delete carrying an older timestamp loses: the record stays live.
        outcome = service.submit_batch([{"op": "delete", "task": wire_task("a", "2023-12-31T00:00:00Z")}])
        result = outcome.results[0]
        assert result.applied is False
        assert result.server_task["deleted"] is False
        assert result.server_task["updated_at"] == ts("2024-01-01T00:00:00Z")
        assert [t["id"] for t in outcome.server_state] == ["a"]
        assert service.get_snapshot()[0]["deleted"] is False

    def test_one_invalid_item_does_not_stop_the_batch(self, service, repo):
        items = [
            {"op": "create", "task": wire_task("a", "2024-01-01T00:00:00Z")},
            {"op": "create", "task": {"title": "no id", "updatedAt": "2024-01-01T00:00:00Z"}},
            {"op": "update", "task": wire_task("c", "2024-01-02T00:00:00Z")},
        ]
        outcome = service.submit_batch(items)

        assert len(outcome.results) == 3
        assert [r.applied for r in outcome.results] == [True, False, True]
        assert outcome.results[1].op == "create"
        assert outcome.results[1].id == "unknown"
        assert outcome.results[1].reason == "invalid_task"
        assert outcome.results[1].server_task is None
        assert {t["id"] for t in repo.list()} == {"a", "c"}

    @pytest.mark.parametrize(
        "item, expected_id",
        [
            (None, "unknown"),
            ("create", "unknown"),
            ({"op": "create"}, "unknown"),
            ({"op": "create", "task": None}, "unknown"),
            ({"op": "create", "task": ["a"]}, "unknown"),
            ({"op": "create", "task": {"id": ""}}, "unknown"),
            ({"op": "create", "task": {"id": 42, "title": "x", "updatedAt": "2024-01-01T00:00:00Z"}}, "unknown"),
            ({"op": "create", "task": {"id": "a", "title": "x"}}, "a"),
            ({"op": "update", "task": {"id": "a", "title": "x", "updatedAt": "yesterday"}}, "a"),
            ({"op": "update", "task": {"id": "a", "title": " ", "updatedAt": "2024-01-01T00:00:00Z"}}, "a"),
        ],
    )
    def test_invalid_tasks_are_reported_per_item(self, service, repo, item, expected_id):
        outcome = service.submit_batch([item])
        assert len(outcome.results) == 1
        result = outcome.results[0]
        assert result.applied is False
        assert result.reason == "invalid_task"
        assert result.id == expected_id
        assert repo.list(include_deleted=True) == []

    @pytest.mark.parametrize("op", ["upsert", "", None, 7])
    def test_unsupported_op_changes_nothing(self, service, repo, op):
        outcome = service.submit_batch([{"op": op, "task": wire_task("a")}])
        result = outcome.results[0]
        assert result.applied is False
        assert result.reason == "unsupported_op"
        assert result.id == "a"
        assert result.op == (op if isinstance(op, str) else None)
        assert repo.list(include_deleted=True) == []

    @pytest.mark.parametrize(
        "task",
        [
            {"id": "a"},
            {"id": "a", "updatedAt": "2024-01-01T00:00:00Z"},
            {"id": "a", "title": " ", "updatedAt": "yesterday"},
        ],
    )
    def test_unknown_op_is_reported_before_task_fields(self, service, repo, task):
        outcome = service.submit_batch([{"op": "bogus", "task": task}])
        result = outcome.results[0]
        assert (result.id, result.applied, result.reason) == ("a", False, "unsupported_op")
        assert repo.list(include_deleted=True) == []

    def test_unknown_op_without_id_is_invalid_task(self, service):
        outcome = service.submit_batch([{"op": "bogus", "task": {"title": "x"}}])
        assert (outcome.results[0].id, outcome.results[0].reason) == ("unknown", "invalid_task")

    def test_create_keeps_client_id(self, service):
        outcome = service.submit_batch([{"op": "create", "task": wire_task("client-generated-42")}])
        assert outcome.results[0].server_task["id"] == "client-generated-42"
        assert outcome.server_state[0]["id"] == "client-generated-42"

    def test_create_for_existing_id_resolves_by_lww(self, service, repo):
        repo.apply_remote(make_task("a", "2024-01-05T00:00:00Z", title="server copy"))

        outcome = service.submit_batch([{"op": "create", "task": wire_task("a", "2024-01-01T00:00:00Z", title="late create")}])
        result = outcome.results[0]
        assert result.applied is False
        assert result.server_task["title"] == "server copy"

        outcome = service.submit_batch([{"op": "create", "task": wire_task("a", "2024-01-06T00:00:00Z", title="newer create")}])
        assert outcome.results[0].applied is True
        assert repo.get("a")["title"] == "newer create"

    def test_delete_newer_than_update_leaves_tombstone(self, service, repo):
        service.submit_batch([{"op": "update", "task": wire_task("a", "2024-01-01T00:00:00Z")}])
        outcome = service.submit_batch([{"op": "delete", "task": wire_task("a", "2024-01-02T00:00:00Z")}])

        result = outcome.results[0]
        assert result.applied is True
        assert result.server_task["deleted"] is True
        assert result.server_task["updated_at"] == ts("2024-01-02T00:00:00Z")
        assert outcome.server_state == []
        assert repo.get("a") is None
        assert [t["id"] for t in repo.list(include_deleted=True)] == ["a"]

    def test_delete_forces_tombstone_flag(self, service, repo):
        outcome = service.submit_batch([{"op": "delete", "task": wire_task("a", deleted=False)}])
        assert outcome.results[0].server_task["deleted"] is True
        assert repo.get("a") is None

    def test_tombstone_wins_over_stale_update_in_later_batch(self, service, repo):
        service.submit_batch([{"op": "delete", "task": wire_task("a", "2024-01-03T00:00:00Z")}])
        outcome = service.submit_batch([{"op": "update", "task": wire_task("a", "2024-01-02T00:00:00Z", title="stale")}])
        assert outcome.results[0].applied is False
        assert outcome.results[0].server_task["deleted"] is True
        assert outcome.server_state == []

    def test_same_id_items_apply_in_submission_order(self, service, repo):
        items = [
            {"op": "update", "task": wire_task("a", "2024-01-02T00:00:00Z", title="v2")},
            {"op": "update", "task": wire_task("a", "2024-01-01T00:00:00Z", title="v1")},
            {"op": "update", "task": wire_task("a", "2024-01-03T00:00:00Z", title="v3")},
            {"op": "update", "task": wire_task("a", "2024-01-03T00:00:00Z", title="v3 again")},
        ]
        outcome = service.submit_batch(items)
        assert [r.applied for r in outcome.results] == [True, False, True, False]
        assert [r.server_task["title"] for r in outcome.results] == ["v2", "v2", "v3", "v3"]
        assert repo.get("a")["title"] == "v3"

    def test_empty_batch(self, service, repo):
        repo.apply_remote(make_task("a"))
        outcome = service.submit_batch([])
        assert outcome.results == []
        assert [t["id"] for t in outcome.server_state] == ["a"]

    def test_snapshot_matches_store_after_batch(self, service, repo):
        repo.apply_remote(make_task("pre", "2024-01-01T00:00:00Z"))
        items = [
            {"op": "create", "task": wire_task("b", "2024-02-01T00:00:00Z")},
            {"op": "update", "task": wire_task("pre", "2024-03-01T00:00:00Z", title="edited")},
            {"op": "delete", "task": wire_task("b", "2024-02-02T00:00:00Z")},
            {"op": "create", "task": wire_task("c", "2024-01-15T00:00:00Z")},
        ]
        outcome = service.submit_batch(items)

        assert outcome.server_state == repo.list(include_deleted=False)
        assert outcome.server_state == service.get_snapshot()
        assert [t["id"] for t in outcome.server_state] == ["pre", "c"]
        assert outcome.server_state[0]["title"] == "edited"


class TestErrorIsolation:
    def test_storage_failure_is_reported_per_item(self):
        repo = FlakyRepository(failing_ids=["boom"])
        service = SyncService(repo)
        items = [
            {"op": "create", "task": wire_task("a")},
            {"op": "update", "task": wire_task("boom")},
            {"op": "create", "task": wire_task("c")},
        ]
        outcome = service.submit_batch(items)

        assert len(outcome.results) == 3
        failed = outcome.results[1]
        assert (failed.op, failed.id, failed.applied) == ("update", "boom", False)
        assert failed.reason == "exception:storage unavailable"
        assert outcome.results[0].applied and outcome.results[2].applied
        assert {t["id"] for t in outcome.server_state} == {"a", "c"}

    def test_storage_failure_is_logged(self, caplog):
        service = SyncService(FlakyRepository())
        with caplog.at_level(logging.INFO, logger="tasksync.sync"):
            service.submit_batch([{"op": "delete", "task": wire_task("boom")}])
        failures = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert failures and failures[0].exc_info is not None
        assert any("Processed sync batch items=1 applied=0" in r.getMessage() for r in caplog.records)

    @pytest.mark.parametrize("items", [None, {"op": "create", "task": {"id": "a"}}, "[]", 3, ({"op": "create"},)])
    def test_malformed_batch_is_rejected_before_any_item(self, items):
        repo = InMemoryRepository()
        with pytest.raises(MalformedBatchError):
            SyncService(repo).submit_batch(items)
        assert repo.list(include_deleted=True) == []
