import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

NAMESPACE = "work_requests"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the work request store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("WORK_REQUEST_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for work request migrations.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the migrations that ship with the service without connecting.",
    )
    args = parser.parse_args(argv)

    from src.infrastructure.postgres_migrations import (
        apply_postgres_migrations,
        load_migrations,
    )

    if args.dry_run:
        for migration in load_migrations(namespace=NAMESPACE):
            print(f"{migration.stored_version} {migration.sql_path.name} {migration.checksum}")
        return 0

    if not args.dsn:
        raise RuntimeError(f"POSTGRES_MIGRATION_DSN_REQUIRED:{NAMESPACE}")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        applied = apply_postgres_migrations(connection=connection, namespace=NAMESPACE)
    print(f"Applied migrations for namespace={NAMESPACE}: {', '.join(applied) or 'none'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
