"""
Shared fixtures: a temporary database seeded with two problem statements,
three competing teams and one admin.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from ctfscore.config import CTFConfig
from ctfscore.scoreboard import ScoreboardSystem
from ctfscore.seed import parse_problem_statement, parse_team, seed_problem_statements, seed_teams

ENV_OVERRIDES = (
    "CTF_NAME", "PS_COUNT", "QUESTIONS_PER_PS", "FIRST_BLOOD_SCORE",
    "STANDARD_SCORE", "WRONG_ANSWER_PENALTY", "FIRST_BLOOD_ENABLED",
    "PENALTY_ENABLED", "PUBLIC_SETTINGS", "MAX_ANSWER_LENGTH", "SECRET_KEY",
    "TOKEN_MAX_AGE", "BCRYPT_ROUNDS", "DB_PATH", "DB_BUSY_TIMEOUT",
    "ALLOW_PS_ACCESS", "SHOW_RESULTS_TO_USERS",
)

PROBLEM_STATEMENTS = [
    {
        "psNumber": 1,
        "title": "Network Traffic Analysis",
        "description": "Investigate the packet capture.",
        "severity": "high",
        "link": "",
        "questions": [
            {"question": "Which protocol was abused?", "answer": "dns", "placeholder": "protocol"},
            {"question": "Name of the implant?", "answer": "ShadowPad", "isCaseSensitive": True},
            {"question": "Attacker IP?", "answer": " 10.0.0.5 ", "hint": "Look at egress"},
        ],
    },
    {
        "psNumber": 2,
        "title": "Phishing Campaign",
        "description": "Trace the lure.",
        "severity": "medium",
        "link": "",
        "questions": [
            {"question": "Sender domain?", "answer": "evil.example"},
            {"question": "Macro function?", "answer": "AutoOpen", "isCaseInsensitive": True},
        ],
    },
]

TEAMS = [
    {"username": "team1", "password": "team1pass", "teamName": "CyberHawks", "teamMembers": ["Alice", "Bob"], "role": "user"},
    {"username": "team2", "password": "team2pass", "teamName": "SecurityNinjas", "teamMembers": ["David"], "role": "user"},
    {"username": "team3", "password": "team3pass", "teamName": "ThreatHunters", "teamMembers": ["Grace"], "role": "user"},
    {"username": "admin", "password": "admin123", "teamName": "Admin", "teamMembers": [], "role": "admin"},
]


class StepClock:
    """Deterministic clock advancing ten seconds per call."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=10)
        return self.now


@pytest.fixture
def config(tmp_path, monkeypatch):
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "ctf_config.json"
    path.write_text(
        json.dumps(
            {
                "ctf_name": "Test CTF",
                "competition": {
                    "problem_statement_count": 3,
                    "questions_per_problem_statement": 3,
                },
                "auth": {"secret_key": "test-secret", "bcrypt_rounds": 4},
                "database": {"path": str(tmp_path / "scores.db")},
            }
        ),
        encoding="utf-8",
    )
    return CTFConfig(str(path))


@pytest.fixture
async def system(config):
    system = ScoreboardSystem(config=config)
    system.engine.clock = StepClock()
    await system.init_db()
    return system


@pytest.fixture
async def seeded(system):
    await seed_problem_statements(
        system.db,
        system.ledger,
        [parse_problem_statement(raw) for raw in PROBLEM_STATEMENTS],
    )
    await seed_teams(
        system.db,
        [
            parse_team(raw, system.config.ps_count, system.config.questions_per_ps, 4)
            for raw in TEAMS
        ],
    )
    await system.settings.update(allow_ps_access=True)
    return system
