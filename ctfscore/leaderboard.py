"""
Read-side projections over team score records: ranked leaderboard and
cumulative score timeline.
"""

from datetime import timedelta
from typing import Any, Dict, Iterable, List

from .models import ROLE_USER, ScoreRecord, Team, format_timestamp


def calculate_ranks_with_ties(
    entries: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Calculate ranks accounting for ties (same scores get same rank).

    Entries must already be sorted best first.

    @param entries: Leaderboard dictionaries containing a "totalScore" key
    @return: The same dictionaries with rank, rankClass and isTied added
    """
    if not entries:
        return []

    current_rank = 1
    previous_score = None

    for i, entry in enumerate(entries):
        score = entry["totalScore"]

        # A new score takes the rank of its position
        if previous_score is not None and score != previous_score:
            current_rank = i + 1

        is_tied = False
        if i > 0 and entries[i - 1]["totalScore"] == score:
            is_tied = True
        elif i < len(entries) - 1 and entries[i + 1]["totalScore"] == score:
            is_tied = True

        rank_class = ""
        if current_rank == 1:
            rank_class = "gold"
        elif current_rank == 2:
            rank_class = "silver"
        elif current_rank == 3:
            rank_class = "bronze"

        entry["rank"] = current_rank
        entry["rankClass"] = rank_class
        entry["isTied"] = is_tied
        previous_score = score

    return entries


def _competitors(teams: Iterable[Team]) -> List[Team]:
    return [t for t in teams if t.role == ROLE_USER]


def _scores(team: Team) -> ScoreRecord:
    return team.scores or ScoreRecord()


def build_leaderboard(
    teams: Iterable[Team],
    include_private: bool = False,
) -> List[Dict[str, Any]]:
    """
    Rank user teams by total score.

    @param teams: Teams to rank; admins are skipped
    @param include_private: Add usernames (admin view)
    @return: Ranked leaderboard entries, best first
    """
    entries = []
    for team in _competitors(teams):
        scores = _scores(team)
        entry = {
            "teamId": team.id,
            "teamName": team.team_name,
            "teamMembers": list(team.team_members),
            "totalScore": scores.total_score,
            "completedQuestions": scores.completed_questions,
            "firstBloods": scores.first_bloods,
        }
        if include_private:
            entry["username"] = team.username
        entries.append(entry)

    entries.sort(key=lambda e: (-e["totalScore"], e["teamName"]))
    return calculate_ranks_with_ties(entries)


def team_timeline(scores: ScoreRecord) -> List[Dict[str, Any]]:
    """
    Build one team's cumulative score series.

    Solved questions are placed at their completion time with their net
    score. Unsolved questions that still carry penalties are placed at
    their last attempt, so the final point always equals the total score.

    @param scores: Team score record
    @return: Points with timestamp and cumulative score, oldest first
    """
    events = []
    for ps_number, index, progress in scores.iter_questions():
        if progress.is_completed and progress.completed_at:
            at = progress.completed_at
        elif progress.score and progress.last_attempt_at:
            at = progress.last_attempt_at
        else:
            continue
        events.append((at, ps_number, index, progress.score))

    events.sort(key=lambda e: (e[0], e[1], e[2]))

    timeline: List[Dict[str, Any]] = []
    cumulative = 0
    for at, ps_number, index, delta in events:
        cumulative += delta
        timeline.append(
            {
                "timestamp": format_timestamp(at),
                "score": cumulative,
                "psNumber": ps_number,
                "questionIndex": index,
            }
        )

    if events:
        start = events[0][0] - timedelta(seconds=1)
        timeline.insert(0, {"timestamp": format_timestamp(start), "score": 0})

    return timeline


def build_timeline(teams: Iterable[Team]) -> List[Dict[str, Any]]:
    """
    Build cumulative score series for every user team.

    @param teams: Teams to project; admins are skipped
    @return: Per-team timelines sorted by final score, highest first
    """
    result = [
        {
            "teamId": team.id,
            "teamName": team.team_name,
            "timeline": team_timeline(_scores(team)),
        }
        for team in _competitors(teams)
    ]

    def final_score(entry: Dict[str, Any]) -> int:
        timeline = entry["timeline"]
        return timeline[-1]["score"] if timeline else 0

    result.sort(key=lambda e: (-final_score(e), e["teamName"]))
    return result
