"""
Provisioning of problem statements and teams from JSON exports.

Problem statement files are lists of objects with psNumber, title,
description, severity, link and questions. Each question has question,
answer, placeholder, hint and isCaseSensitive (older exports use
isCaseInsensitive instead). Team files are lists of objects with
username, password, teamName, teamMembers and role.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from .auth import hash_password
from .errors import InvalidRequest
from .models import (
    ROLE_USER,
    ROLES,
    ProblemStatement,
    Question,
    ScoreRecord,
    Team,
    utcnow,
)
from .normalizer import hash_answer

logger = logging.getLogger(__name__)


def _read_json_list(path: str) -> List[Dict[str, Any]]:
    with open(Path(path), "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise InvalidRequest(f"{path}: expected a JSON list")
    return data


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() == "TRUE"
    return bool(value)


def _case_sensitive(raw: Dict[str, Any]) -> bool:
    value = raw.get("isCaseSensitive")
    if value is None and "isCaseInsensitive" in raw:
        return not _flag(raw["isCaseInsensitive"])
    return _flag(value)


def parse_problem_statement(raw: Dict[str, Any]) -> ProblemStatement:
    """
    Convert one exported problem statement, hashing its answers.

    @param raw: Exported problem statement dictionary
    @return: ProblemStatement whose questions hold only answer digests
    """
    try:
        ps_number = int(raw["psNumber"])
    except (KeyError, TypeError, ValueError):
        raise InvalidRequest("Problem statement is missing a valid psNumber")

    questions = []
    for position, q in enumerate(raw.get("questions") or []):
        answer = q.get("answer")
        if answer is None or str(answer).strip() == "":
            raise InvalidRequest(
                f"PS {ps_number} question {position} has no answer"
            )
        case_sensitive = _case_sensitive(q)
        questions.append(
            Question(
                question=str(q.get("question", "")).strip(),
                answer_hash=hash_answer(str(answer), case_sensitive),
                is_case_sensitive=case_sensitive,
                placeholder=str(q.get("placeholder") or "Enter your answer").strip(),
                hint=str(q.get("hint") or "").strip(),
            )
        )

    return ProblemStatement(
        ps_number=ps_number,
        title=raw.get("title", ""),
        description=raw.get("description", ""),
        severity=raw.get("severity", ""),
        link=raw.get("link", ""),
        questions=questions,
    )


def load_problem_statements(path: str) -> List[ProblemStatement]:
    return [parse_problem_statement(raw) for raw in _read_json_list(path)]


async def seed_problem_statements(
    db_manager: Any,
    ledger: Any,
    problem_statements: List[ProblemStatement],
) -> None:
    """
    Replace all content and reset the first-blood ledger.

    @param db_manager: DatabaseManager
    @param ledger: FirstBloodLedger
    @param problem_statements: Parsed problem statements
    """
    config = db_manager.config
    for ps in problem_statements:
        if not 1 <= ps.ps_number <= config.ps_count:
            raise InvalidRequest(f"PS number {ps.ps_number} out of range")
        if len(ps.questions) > config.questions_per_ps:
            raise InvalidRequest(
                f"PS {ps.ps_number} has {len(ps.questions)} questions, "
                f"more than the configured {config.questions_per_ps}"
            )

    async with db_manager.transaction() as db:
        await db_manager.replace_problem_statements(db, problem_statements)
        await ledger.clear(db)
        for ps in problem_statements:
            await ledger.initialize(db, ps.ps_number, len(ps.questions))

    for ps in problem_statements:
        case_sensitive = sum(1 for q in ps.questions if q.is_case_sensitive)
        logger.info(
            "Seeded PS %s: %s (%d questions, %d case-sensitive)",
            ps.ps_number,
            ps.title or "untitled",
            len(ps.questions),
            case_sensitive,
        )


def parse_team(
    raw: Dict[str, Any],
    ps_count: int,
    questions_per_ps: int,
    bcrypt_rounds: int = 12,
) -> Team:
    """
    Convert one exported team, hashing its password.

    The username doubles as the team id. User teams get a zeroed score
    record; admins get none.
    """
    username = str(raw.get("username") or "").strip()
    password = raw.get("password")
    role = raw.get("role", ROLE_USER)
    if not username or not password:
        raise InvalidRequest("Team entries need a username and password")
    if role not in ROLES:
        raise InvalidRequest(f"Team {username}: unknown role {role!r}")

    return Team(
        id=username,
        username=username,
        team_name=str(raw.get("teamName") or username),
        role=role,
        team_members=[str(m) for m in raw.get("teamMembers") or []],
        password_hash=hash_password(str(password), bcrypt_rounds),
        scores=(
            ScoreRecord.zeroed(ps_count, questions_per_ps)
            if role == ROLE_USER
            else None
        ),
        created_at=utcnow(),
    )


async def load_teams(path: str, config: Any) -> List[Team]:
    """
    Read and convert a team export file.

    Password hashing runs in the default executor.
    """
    raws = _read_json_list(path)
    loop = asyncio.get_running_loop()
    rounds = config.get("auth", "bcrypt_rounds")
    return [
        await loop.run_in_executor(
            None,
            parse_team,
            raw,
            config.ps_count,
            config.questions_per_ps,
            rounds,
        )
        for raw in raws
    ]


async def seed_teams(
    db_manager: Any,
    teams: List[Team],
) -> None:
    """
    Insert or replace teams.

    @param db_manager: DatabaseManager
    @param teams: Parsed teams
    """
    async with db_manager.transaction() as db:
        for team in teams:
            await db_manager.upsert_team(db, team)

    for team in teams:
        logger.info("Provisioned %s: %s (%s)", team.role, team.team_name, team.username)
