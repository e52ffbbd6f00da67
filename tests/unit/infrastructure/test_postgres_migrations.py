from pathlib import Path

import pytest

from src.infrastructure.postgres_migrations import (
    _advisory_lock_key,
    _split_statements,
    apply_postgres_migrations,
    load_migrations,
)


class _FakeCursor:
    def __init__(self, rows=None):
        self._rows = rows or []

    def fetchall(self):
        return list(self._rows)


class _FakeConnection:
    def __init__(self):
        self.schema_migrations: dict[tuple[str, str], str] = {}
        self.applied_statements: list[str] = []
        self.commit_count = 0
        self.rollback_count = 0
        self.lock_calls: list[int] = []
        self.unlock_calls: list[int] = []

    def execute(self, query, args=None):
        sql = " ".join(str(query).split())
        if sql == "SELECT pg_advisory_lock(%s::bigint)":
            self.lock_calls.append(int(args[0]))
            return _FakeCursor()
        if sql == "SELECT pg_advisory_unlock(%s::bigint)":
            self.unlock_calls.append(int(args[0]))
            return _FakeCursor()
        if sql.startswith("CREATE TABLE IF NOT EXISTS schema_migrations"):
            return _FakeCursor()
        if "FROM schema_migrations" in sql:
            namespace = args[0]
            rows = [
                {"version": version, "checksum": checksum}
                for (stored_namespace, version), checksum in self.schema_migrations.items()
                if stored_namespace == namespace
            ]
            return _FakeCursor(rows=sorted(rows, key=lambda row: row["version"]))
        if "INSERT INTO schema_migrations" in sql:
            self.schema_migrations[(args[1], args[0])] = args[2]
            return _FakeCursor()
        self.applied_statements.append(sql)
        return _FakeCursor()

    def commit(self):
        self.commit_count += 1

    def rollback(self):
        self.rollback_count += 1


def test_work_request_migrations_are_forward_only_and_idempotent():
    connection = _FakeConnection()

    applied = apply_postgres_migrations(connection=connection, namespace="work_requests")
    first_count = len(connection.applied_statements)

    assert applied == ["0001"]
    assert first_count > 0
    assert ("work_requests", "work_requests:0001") in connection.schema_migrations
    assert connection.commit_count == 1
    assert connection.lock_calls == [_advisory_lock_key("work_requests")]
    assert connection.unlock_calls == [_advisory_lock_key("work_requests")]

    assert apply_postgres_migrations(connection=connection, namespace="work_requests") == []
    assert len(connection.applied_statements) == first_count
    assert connection.commit_count == 2


def test_checksum_mismatch_rolls_back_and_unlocks(tmp_path: Path):
    namespace_dir = tmp_path / "custom"
    namespace_dir.mkdir()
    (namespace_dir / "0001_sample.sql").write_text(
        "CREATE TABLE IF NOT EXISTS sample_table (id TEXT PRIMARY KEY);", encoding="utf-8"
    )
    connection = _FakeConnection()
    connection.schema_migrations[("custom", "custom:0001")] = "checksum-old"

    with pytest.raises(RuntimeError) as exc:
        apply_postgres_migrations(
            connection=connection, namespace="custom", migrations_root=tmp_path
        )

    assert str(exc.value) == "POSTGRES_MIGRATION_CHECKSUM_MISMATCH:custom:0001"
    assert connection.rollback_count == 1
    assert connection.lock_calls == [_advisory_lock_key("custom")]
    assert connection.unlock_calls == [_advisory_lock_key("custom")]


def test_load_migrations_orders_files_and_rejects_unknown_namespace(tmp_path: Path):
    namespace_dir = tmp_path / "ordered"
    namespace_dir.mkdir()
    (namespace_dir / "0002_second.sql").write_text("SELECT 2;", encoding="utf-8")
    (namespace_dir / "0001_first.sql").write_text("SELECT 1;", encoding="utf-8")

    migrations = load_migrations(namespace="ordered", migrations_root=tmp_path)

    assert [migration.version for migration in migrations] == ["0001", "0002"]
    assert migrations[0].stored_version == "ordered:0001"
    with pytest.raises(RuntimeError) as exc:
        load_migrations(namespace="missing", migrations_root=tmp_path)
    assert str(exc.value) == "POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:missing"


def test_split_statements_drops_empty_fragments():
    assert _split_statements("CREATE TABLE a (id TEXT);\n\n;CREATE INDEX b ON a (id);\n") == [
        "CREATE TABLE a (id TEXT)",
        "CREATE INDEX b ON a (id)",
    ]


def test_advisory_lock_key_is_stable_and_namespace_scoped():
    assert _advisory_lock_key("work_requests") == _advisory_lock_key("work_requests")
    assert _advisory_lock_key("work_requests") != _advisory_lock_key("custom")
