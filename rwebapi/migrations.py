"""Schema migrations for the ``auth_users`` table and a command to run them."""

from __future__ import annotations

import argparse
import logging
import os
import time
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    false,
    func,
    insert,
    select,
    true,
)
from sqlalchemy.engine import Connection, Engine

log = logging.getLogger(__name__)

_VERSIONS = Table(
    "seaql_migrations",
    MetaData(),
    Column("version", String, primary_key=True),
    Column("applied_at", BigInteger, nullable=False),
)


class _Migration(Protocol):
    name: str

    def up(self, conn: Connection) -> None: ...

    def down(self, conn: Connection) -> None: ...


def _auth_users_table(metadata: MetaData) -> Table:
    return Table(
        "auth_users",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("email", String, nullable=False, unique=True),
        Column("username", String, nullable=False, unique=True),
        Column("password", String, nullable=False),
        Column("first_name", String, nullable=True),
        Column("last_name", String, nullable=True),
        Column("is_active", Boolean, nullable=False, server_default=true()),
        Column("is_verified", Boolean, nullable=False, server_default=false()),
        Column("is_superuser", Boolean, nullable=False, server_default=false()),
        Column("is_staff", Boolean, nullable=False, server_default=false()),
        Column("last_login", DateTime, nullable=False),
        Column(
            "created_at", DateTime, nullable=False, server_default=func.current_timestamp()
        ),
        Column(
            "updated_at", DateTime, nullable=False, server_default=func.current_timestamp()
        ),
    )


class CreateUsersTable:
    """Create the ``auth_users`` table."""

    name = "m20250807_065844_create_users_table"

    def up(self, conn: Connection) -> None:
        _auth_users_table(MetaData()).create(conn, checkfirst=True)

    def down(self, conn: Connection) -> None:
        _auth_users_table(MetaData()).drop(conn)


_INDEXES = (
    ("idx_auth_users_email", ("email",)),
    ("idx_auth_users_username", ("username",)),
    ("idx_auth_users_is_active", ("is_active",)),
    ("idx_auth_users_active_verified", ("is_active", "is_verified")),
)


def _auth_users_indexes() -> list[Index]:
    table = Table(
        "auth_users",
        MetaData(),
        Column("email"),
        Column("username"),
        Column("is_active"),
        Column("is_verified"),
    )
    return [Index(name, *(table.c[col] for col in cols)) for name, cols in _INDEXES]


class AddAuthUsersIndexes:
    """Add lookup indexes to ``auth_users``."""

    name = "m20250807_091101_add_auth_users_indexes"

    def up(self, conn: Connection) -> None:
        for index in _auth_users_indexes():
            index.create(conn)

    def down(self, conn: Connection) -> None:
        for index in reversed(_auth_users_indexes()):
            index.drop(conn)


MIGRATIONS: tuple[_Migration, ...] = (CreateUsersTable(), AddAuthUsersIndexes())


def _check_steps(steps: int | None) -> None:
    if steps is not None and steps < 0:
        raise ValueError("steps must not be negative")


class Migrator:
    """Apply and roll back migrations, recording them in ``seaql_migrations``."""

    def __init__(self, engine: Engine, migrations: Sequence[_Migration] | None = None) -> None:
        self.engine = engine
        self.migrations = list(MIGRATIONS if migrations is None else migrations)

    def _applied(self) -> set[str]:
        with self.engine.begin() as conn:
            _VERSIONS.create(conn, checkfirst=True)
            return set(conn.scalars(select(_VERSIONS.c.version)))

    def status(self) -> list[tuple[str, bool]]:
        """Return each migration's name and whether it has been applied."""
        applied = self._applied()
        return [(migration.name, migration.name in applied) for migration in self.migrations]

    def up(self, steps: int | None = None) -> list[str]:
        """Apply pending migrations, all of them or the first ``steps``."""
        _check_steps(steps)
        applied = self._applied()
        pending = [m for m in self.migrations if m.name not in applied]
        if steps is not None:
            pending = pending[:steps]
        done = []
        for migration in pending:
            with self.engine.begin() as conn:
                migration.up(conn)
                conn.execute(
                    insert(_VERSIONS).values(
                        version=migration.name, applied_at=int(time.time())
                    )
                )
            log.info("Applied migration %s", migration.name)
            done.append(migration.name)
        return done

    def down(self, steps: int | None = None) -> list[str]:
        """Roll back applied migrations, newest first; all when ``steps`` is None."""
        _check_steps(steps)
        applied = self._applied()
        to_revert = [m for m in reversed(self.migrations) if m.name in applied]
        if steps is not None:
            to_revert = to_revert[:steps]
        done = []
        for migration in to_revert:
            with self.engine.begin() as conn:
                migration.down(conn)
                conn.execute(delete(_VERSIONS).where(_VERSIONS.c.version == migration.name))
            log.info("Rolled back migration %s", migration.name)
            done.append(migration.name)
        return done

    def fresh(self) -> list[str]:
        """Drop every table in the database, then apply all migrations."""
        with self.engine.begin() as conn:
            existing = MetaData()
            existing.reflect(bind=conn)
            existing.drop_all(bind=conn)
        return self.up()


def _non_negative(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rwebapi-migrate", description="Run schema migrations.")
    parser.add_argument(
        "-u", "--database-url", default=None, help="database URL (default: $DATABASE_URL)"
    )
    commands = parser.add_subparsers(dest="command")
    up = commands.add_parser("up", help="apply pending migrations")
    up.add_argument("-n", "--num", type=_non_negative, default=None)
    down = commands.add_parser("down", help="roll back applied migrations")
    down.add_argument("-n", "--num", type=_non_negative, default=1)
    commands.add_parser("fresh", help="drop all tables and reapply all migrations")
    commands.add_parser("refresh", help="roll back all migrations and reapply them")
    commands.add_parser("reset", help="roll back all migrations")
    commands.add_parser("status", help="show which migrations are applied")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the migration command line."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    url = args.database_url or os.environ.get("DATABASE_URL")
    if not url:
        parser.error("no database URL given; use --database-url or set DATABASE_URL")

    engine = create_engine(url)
    try:
        migrator = Migrator(engine)
        command = args.command or "up"
        if command == "status":
            for name, applied in migrator.status():
                print(f"Migration '{name}'... {'Applied' if applied else 'Pending'}")
            return 0
        if command == "up":
            done = migrator.up(getattr(args, "num", None))
            verb = "Applied"
        elif command == "down":
            done = migrator.down(args.num)
            verb = "Rolled back"
        elif command == "fresh":
            done = migrator.fresh()
            verb = "Applied"
        elif command == "reset":
            done = migrator.down()
            verb = "Rolled back"
        else:
            migrator.down()
            done = migrator.up()
            verb = "Applied"
        for name in done:
            print(f"{verb} migration '{name}'")
        if not done:
            print("No migrations to run")
        return 0
    finally:
        engine.dispose()