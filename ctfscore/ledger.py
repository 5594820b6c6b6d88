"""
First-blood ledger: one write-once claim per (problem statement, question).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List

import aiosqlite

from .models import FirstBloodClaim, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


class FirstBloodLedger:
    """Tracks which team solved each question first."""

    def __init__(
        self,
        db_manager: Any,
    ) -> None:
        self.db = db_manager

    async def try_claim(
        self,
        db: aiosqlite.Connection,
        ps_number: int,
        question_index: int,
        claimant: str,
        timestamp: datetime,
    ) -> bool:
        """
        Claim first blood for a question if nobody holds it yet.

        The read of the current claim and the write of the new one happen in
        a single conditional upsert, so two concurrent claimants can never
        both succeed. A missing entry is created already claimed.

        @param db: Connection (inside the scoring transaction)
        @param ps_number: Problem statement number
        @param question_index: Question index
        @param claimant: Team identifier
        @param timestamp: Claim time
        @return: True if this call made the claim, False if it was already held
        """
        cursor = await db.execute(
            """
            INSERT INTO first_bloods (ps_number, question_index, claimed_by, claimed_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(ps_number, question_index) DO UPDATE SET
                claimed_by = excluded.claimed_by,
                claimed_at = excluded.claimed_at
            WHERE first_bloods.claimed_by IS NULL
            """,
            (ps_number, question_index, claimant, format_timestamp(timestamp)),
        )
        claimed = cursor.rowcount == 1
        if claimed:
            logger.info(
                "First blood: team=%s ps=%s question=%s",
                claimant,
                ps_number,
                question_index,
            )
        return claimed

    async def initialize(
        self,
        db: aiosqlite.Connection,
        ps_number: int,
        question_count: int,
    ) -> None:
        """
        Create unclaimed entries for every question of a problem statement.

        @param db: Connection (inside a provisioning transaction)
        @param ps_number: Problem statement number
        @param question_count: Number of questions
        """
        await db.execute("DELETE FROM first_bloods WHERE ps_number = ?", (ps_number,))
        await db.executemany(
            "INSERT INTO first_bloods (ps_number, question_index) VALUES (?, ?)",
            [(ps_number, index) for index in range(question_count)],
        )

    async def clear(self, db: aiosqlite.Connection) -> None:
        await db.execute("DELETE FROM first_bloods")

    async def get_claim(
        self,
        ps_number: int,
        question_index: int,
    ) -> FirstBloodClaim:
        async with self.db.connection() as db:
            cursor = await db.execute(
                "SELECT claimed_by, claimed_at FROM first_bloods "
                "WHERE ps_number = ? AND question_index = ?",
                (ps_number, question_index),
            )
            row = await cursor.fetchone()
        if row is None:
            return FirstBloodClaim(ps_number, question_index)
        return FirstBloodClaim(
            ps_number, question_index, row[0], parse_timestamp(row[1])
        )

    async def list_claims(self) -> Dict[int, List[FirstBloodClaim]]:
        """
        Return every ledger entry grouped by problem statement.

        @return: Mapping of PS number to its claims ordered by question index
        """
        async with self.db.connection() as db:
            cursor = await db.execute(
                "SELECT ps_number, question_index, claimed_by, claimed_at "
                "FROM first_bloods ORDER BY ps_number, question_index"
            )
            rows = await cursor.fetchall()

        claims: Dict[int, List[FirstBloodClaim]] = {}
        for ps_number, question_index, claimed_by, claimed_at in rows:
            claims.setdefault(ps_number, []).append(
                FirstBloodClaim(
                    ps_number, question_index, claimed_by, parse_timestamp(claimed_at)
                )
            )
        return claims
