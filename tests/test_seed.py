"""
Tests for provisioning problem statements and teams.
"""

import json

import pytest

from ctfscore.auth import check_password
from ctfscore.errors import InvalidRequest
from ctfscore.normalizer import hash_answer
from ctfscore.seed import (
    load_problem_statements,
    load_teams,
    parse_problem_statement,
    parse_team,
    seed_problem_statements,
    seed_teams,
)

from .conftest import PROBLEM_STATEMENTS, TEAMS


def test_answers_are_stored_hashed():
    ps = parse_problem_statement(PROBLEM_STATEMENTS[0])

    assert ps.questions[0].answer_hash == hash_answer("dns")
    assert ps.questions[1].answer_hash == hash_answer("ShadowPad", case_sensitive=True)
    assert ps.questions[1].is_case_sensitive
    assert ps.questions[2].answer_hash == hash_answer("10.0.0.5")
    assert "answer" not in ps.questions[0].to_dict()


def test_case_sensitivity_flags():
    raw = {
        "psNumber": 1,
        "questions": [
            {"question": "a", "answer": "A", "isCaseSensitive": "TRUE"},
            {"question": "b", "answer": "B", "isCaseSensitive": "false"},
            {"question": "c", "answer": "C", "isCaseInsensitive": False},
            {"question": "d", "answer": "D"},
        ],
    }
    ps = parse_problem_statement(raw)
    assert [q.is_case_sensitive for q in ps.questions] == [True, False, True, False]


def test_legacy_case_insensitive_string_flags():
    raw = {
        "psNumber": 1,
        "questions": [
            {"question": "a", "answer": "Secret", "isCaseInsensitive": "FALSE"},
            {"question": "b", "answer": "Secret", "isCaseInsensitive": " true "},
            {"question": "c", "answer": "Secret", "isCaseInsensitive": True},
        ],
    }
    ps = parse_problem_statement(raw)
    assert [q.is_case_sensitive for q in ps.questions] == [True, False, False]


def test_default_placeholder():
    ps = parse_problem_statement({"psNumber": 1, "questions": [{"question": "q", "answer": "a"}]})
    assert ps.questions[0].placeholder == "Enter your answer"


def test_missing_answer_is_rejected():
    with pytest.raises(InvalidRequest):
        parse_problem_statement({"psNumber": 1, "questions": [{"question": "q", "answer": " "}]})


def test_missing_ps_number_is_rejected():
    with pytest.raises(InvalidRequest):
        parse_problem_statement({"questions": []})


def test_load_problem_statements_from_file(tmp_path):
    path = tmp_path / "problemStatements.json"
    path.write_text(json.dumps(PROBLEM_STATEMENTS), encoding="utf-8")

    loaded = load_problem_statements(str(path))

    assert [ps.ps_number for ps in loaded] == [1, 2]
    assert loaded[0].title == "Network Traffic Analysis"


def test_load_rejects_non_list(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"psNumber": 1}), encoding="utf-8")
    with pytest.raises(InvalidRequest):
        load_problem_statements(str(path))


def test_user_team_gets_zeroed_scores_and_hashed_password():
    team = parse_team(TEAMS[0], 3, 4, bcrypt_rounds=4)

    assert team.id == "team1"
    assert team.team_members == ["Alice", "Bob"]
    assert team.password_hash != "team1pass"
    assert check_password("team1pass", team.password_hash)
    assert sorted(team.scores.ps_scores) == [1, 2, 3]
    assert len(team.scores.ps_scores[1].questions) == 4


def test_admin_has_no_score_record():
    assert parse_team(TEAMS[3], 3, 4, bcrypt_rounds=4).scores is None


def test_invalid_team_entries():
    with pytest.raises(InvalidRequest):
        parse_team({"username": "x"}, 1, 1, bcrypt_rounds=4)
    with pytest.raises(InvalidRequest):
        parse_team({"username": "x", "password": "p", "role": "root"}, 1, 1, bcrypt_rounds=4)


async def test_seeding_initializes_ledger(seeded):
    claims = await seeded.ledger.list_claims()
    assert len(claims[1]) == 3
    assert len(claims[2]) == 2

    stored = await seeded.db.list_problem_statements()
    assert [ps.ps_number for ps in stored] == [1, 2]
    assert stored[0].questions[1].is_case_sensitive


async def test_reseeding_content_resets_claims(seeded):
    await seeded.engine.check_answer("team1", 1, 0, "dns")
    assert (await seeded.ledger.get_claim(1, 0)).is_claimed

    await seed_problem_statements(
        seeded.db,
        seeded.ledger,
        [parse_problem_statement(PROBLEM_STATEMENTS[0])],
    )

    claims = await seeded.ledger.list_claims()
    assert sorted(claims) == [1]
    assert not any(c.is_claimed for c in claims[1])


async def test_content_outside_configured_shape_is_rejected(system):
    too_far = parse_problem_statement({"psNumber": 9, "questions": []})
    with pytest.raises(InvalidRequest):
        await seed_problem_statements(system.db, system.ledger, [too_far])

    too_many = parse_problem_statement(
        {"psNumber": 1, "questions": [{"question": str(i), "answer": "a"} for i in range(4)]}
    )
    with pytest.raises(InvalidRequest):
        await seed_problem_statements(system.db, system.ledger, [too_many])


async def test_load_and_seed_teams(system, tmp_path):
    path = tmp_path / "teams.json"
    path.write_text(json.dumps(TEAMS), encoding="utf-8")

    teams = await load_teams(str(path), system.config)
    await seed_teams(system.db, teams)

    stored = await system.db.list_teams()
    assert [t.username for t in stored] == ["admin", "team1", "team2", "team3"]
    users = await system.db.list_teams("user")
    assert len(users) == 3
    assert all(t.scores.is_consistent() for t in users)
    admin = await system.db.get_team_by_username("admin")
    assert admin.is_admin
    assert admin.scores is None
