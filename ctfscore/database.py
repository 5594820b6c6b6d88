"""
Database operations for the CTF scoring service.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import aiosqlite

from .errors import StorageConflict, StorageFailure
from .models import (
    ProblemStatement,
    Question,
    ScoreRecord,
    Team,
    format_timestamp,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


class DatabaseManager:
    """Team store, content store and transaction boundary over SQLite."""

    def __init__(
        self,
        db_path: str,
        config: Any,
    ) -> None:
        self.db_path = db_path
        self.config = config
        self.busy_timeout = float(config.get("database", "busy_timeout"))

    def _connect(self, **kwargs: Any):
        return aiosqlite.connect(self.db_path, timeout=self.busy_timeout, **kwargs)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Open a plain connection for read paths.

        Storage errors are re-raised as StorageFailure.
        """
        try:
            async with self._connect() as db:
                yield db
        except aiosqlite.Error as e:
            logger.error("Storage error on %s: %s", self.db_path, e)
            raise StorageFailure("Storage unavailable") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run a block inside a single write transaction.

        BEGIN IMMEDIATE takes the write lock up front, so concurrent
        read-modify-write cycles are serialized. The transaction commits
        when the block exits cleanly and rolls back on any exception; the
        caller only sees a return once COMMIT has succeeded.
        """
        try:
            async with self._connect(isolation_level=None) as db:
                await db.execute("BEGIN IMMEDIATE")
                try:
                    yield db
                except BaseException:
                    await db.execute("ROLLBACK")
                    raise
                await db.execute("COMMIT")
        except aiosqlite.Error as e:
            logger.error("Storage error on %s: %s", self.db_path, e)
            raise StorageFailure("Storage unavailable") from e

    async def init_db(self) -> None:
        """
        Initialize the SQLite database schema.

        Creates tables and indexes, performs schema migrations if needed,
        and seeds the settings row from the configured initial values.
        """
        async with self.connection() as db:
            # WAL lets readers proceed while a scoring transaction holds the write lock
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS teams (
                    id TEXT PRIMARY KEY,
                    username TEXT NOT NULL UNIQUE,
                    team_name TEXT NOT NULL,
                    members TEXT NOT NULL DEFAULT '[]',
                    role TEXT NOT NULL DEFAULT 'user',
                    password_hash TEXT NOT NULL,
                    scores TEXT,
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS problem_statements (
                    ps_number INTEGER PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    description TEXT NOT NULL DEFAULT '',
                    severity TEXT NOT NULL DEFAULT '',
                    link TEXT NOT NULL DEFAULT '',
                    questions TEXT NOT NULL DEFAULT '[]'
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS first_bloods (
                    ps_number INTEGER NOT NULL,
                    question_index INTEGER NOT NULL,
                    claimed_by TEXT,
                    claimed_at TEXT,
                    PRIMARY KEY (ps_number, question_index)
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_teams_role
                ON teams(role)
            """)

            initial = self.config.get("initial_settings") or {}
            for key in ("allow_ps_access", "show_results_to_users"):
                await db.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                    (key, json.dumps(bool(initial.get(key, False)))),
                )

            await db.commit()

            await self._migrate_schema(db)

    async def _migrate_schema(
        self,
        db: Any,
    ) -> None:
        """
        Handle database schema migrations.

        @param db: Active database connection
        """
        cursor = await db.execute("PRAGMA table_info(teams)")
        columns = await cursor.fetchall()
        column_names = [column[1] for column in columns]

        if "version" not in column_names:
            logger.info("Migrating database schema to add teams.version column...")
            await db.execute(
                "ALTER TABLE teams ADD COLUMN version INTEGER NOT NULL DEFAULT 0"
            )
            await db.commit()
            logger.info("Schema migration completed.")

        await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        await db.commit()

    # Team store

    def _row_to_team(self, row: Any) -> Team:
        (
            team_id,
            username,
            team_name,
            members,
            role,
            password_hash,
            scores,
            version,
            created_at,
        ) = row
        return Team(
            id=team_id,
            username=username,
            team_name=team_name,
            team_members=json.loads(members or "[]"),
            role=role,
            password_hash=password_hash,
            scores=ScoreRecord.from_dict(json.loads(scores)) if scores else None,
            version=version,
            created_at=parse_timestamp(created_at),
        )

    _TEAM_COLUMNS = (
        "id, username, team_name, members, role, password_hash, scores, version, created_at"
    )

    async def fetch_team(
        self,
        db: aiosqlite.Connection,
        team_id: str,
    ) -> Optional[Team]:
        """
        Read a team by id on an existing connection.

        @param db: Connection (usually inside transaction())
        @param team_id: Team identifier
        @return: Team, or None if absent
        """
        cursor = await db.execute(
            f"SELECT {self._TEAM_COLUMNS} FROM teams WHERE id = ?", (team_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_team(row) if row else None

    async def get_team(self, team_id: str) -> Optional[Team]:
        async with self.connection() as db:
            return await self.fetch_team(db, team_id)

    async def get_team_by_username(self, username: str) -> Optional[Team]:
        async with self.connection() as db:
            cursor = await db.execute(
                f"SELECT {self._TEAM_COLUMNS} FROM teams WHERE username = ?",
                (username,),
            )
            row = await cursor.fetchone()
            return self._row_to_team(row) if row else None

    async def list_teams(
        self,
        role: Optional[str] = None,
    ) -> List[Team]:
        """
        List teams, optionally filtered by role.

        @param role: "user" or "admin"; None returns every team
        @return: Teams ordered by username
        """
        async with self.connection() as db:
            if role is None:
                cursor = await db.execute(
                    f"SELECT {self._TEAM_COLUMNS} FROM teams ORDER BY username"
                )
            else:
                cursor = await db.execute(
                    f"SELECT {self._TEAM_COLUMNS} FROM teams WHERE role = ? ORDER BY username",
                    (role,),
                )
            return [self._row_to_team(row) for row in await cursor.fetchall()]

    async def upsert_team(
        self,
        db: aiosqlite.Connection,
        team: Team,
    ) -> None:
        """
        Insert or replace a team record (provisioning only).

        @param db: Connection (inside transaction())
        @param team: Team to store; scores may be None for admins
        """
        await db.execute(
            """
            INSERT INTO teams (id, username, team_name, members, role,
                               password_hash, scores, version, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
            ON CONFLICT(id) DO UPDATE SET
                username = excluded.username,
                team_name = excluded.team_name,
                members = excluded.members,
                role = excluded.role,
                password_hash = excluded.password_hash,
                scores = excluded.scores,
                version = teams.version + 1
            """,
            (
                team.id,
                team.username,
                team.team_name,
                json.dumps(team.team_members),
                team.role,
                team.password_hash,
                json.dumps(team.scores.to_dict()) if team.scores else None,
                format_timestamp(team.created_at or utcnow()),
            ),
        )

    async def save_scores(
        self,
        db: aiosqlite.Connection,
        team: Team,
    ) -> None:
        """
        Write a team's whole score tree in one conditional update.

        The update only applies if the stored version still equals the
        version that was read; otherwise StorageConflict is raised and the
        surrounding transaction rolls back.

        @param db: Connection (inside transaction())
        @param team: Team whose scores were mutated in memory
        """
        cursor = await db.execute(
            "UPDATE teams SET scores = ?, version = version + 1 "
            "WHERE id = ? AND version = ?",
            (json.dumps(team.scores.to_dict()), team.id, team.version),
        )
        if cursor.rowcount != 1:
            raise StorageConflict(f"Team {team.id} was modified concurrently")
        team.version += 1

    # Content store

    def _row_to_problem_statement(self, row: Any) -> ProblemStatement:
        ps_number, title, description, severity, link, questions = row
        return ProblemStatement(
            ps_number=ps_number,
            title=title,
            description=description,
            severity=severity,
            link=link,
            questions=[Question.from_dict(q) for q in json.loads(questions)],
        )

    async def fetch_problem_statement(
        self,
        db: aiosqlite.Connection,
        ps_number: int,
    ) -> Optional[ProblemStatement]:
        cursor = await db.execute(
            "SELECT ps_number, title, description, severity, link, questions "
            "FROM problem_statements WHERE ps_number = ?",
            (ps_number,),
        )
        row = await cursor.fetchone()
        return self._row_to_problem_statement(row) if row else None

    async def get_problem_statement(self, ps_number: int) -> Optional[ProblemStatement]:
        async with self.connection() as db:
            return await self.fetch_problem_statement(db, ps_number)

    async def list_problem_statements(self) -> List[ProblemStatement]:
        async with self.connection() as db:
            cursor = await db.execute(
                "SELECT ps_number, title, description, severity, link, questions "
                "FROM problem_statements ORDER BY ps_number"
            )
            return [
                self._row_to_problem_statement(row)
                for row in await cursor.fetchall()
            ]

    async def replace_problem_statements(
        self,
        db: aiosqlite.Connection,
        problem_statements: Iterable[ProblemStatement],
    ) -> None:
        """
        Replace all content with the given problem statements.

        @param db: Connection (inside transaction())
        @param problem_statements: Problem statements with hashed answers
        """
        await db.execute("DELETE FROM problem_statements")
        for ps in problem_statements:
            await db.execute(
                "INSERT INTO problem_statements "
                "(ps_number, title, description, severity, link, questions) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    ps.ps_number,
                    ps.title,
                    ps.description,
                    ps.severity,
                    ps.link,
                    json.dumps([q.to_dict() for q in ps.questions]),
                ),
            )

    # Settings rows

    async def read_settings_rows(self) -> Dict[str, Any]:
        async with self.connection() as db:
            cursor = await db.execute("SELECT key, value FROM settings")
            return {key: json.loads(value) for key, value in await cursor.fetchall()}

    async def write_settings_rows(self, values: Dict[str, Any]) -> None:
        async with self.transaction() as db:
            for key, value in values.items():
                await db.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, json.dumps(value)),
                )

    async def reset_competition(self) -> None:
        """Delete all teams, content and first-blood claims."""
        async with self.transaction() as db:
            await db.execute("DELETE FROM first_bloods")
            await db.execute("DELETE FROM problem_statements")
            await db.execute("DELETE FROM teams")
        logger.warning("Competition data reset")
