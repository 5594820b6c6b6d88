"""
Typed records for teams, score trees, content and settings.

The score tree is Team -> ScoreRecord -> PSScore -> QuestionProgress. All
score mutations go through ScoreRecord.apply so the question score, the
problem statement subtotal and the grand total always move together.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp, accepting a trailing "Z".

    @param value: Timestamp string or None
    @return: Timezone-aware datetime, or None for empty input
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class QuestionProgress:
    is_completed: bool = False
    score: int = 0
    attempts: int = 0
    completed_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    is_first_blood: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isCompleted": self.is_completed,
            "score": self.score,
            "attempts": self.attempts,
            "completedAt": format_timestamp(self.completed_at),
            "lastAttemptAt": format_timestamp(self.last_attempt_at),
            "isFirstBlood": self.is_first_blood,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionProgress":
        return cls(
            is_completed=bool(data.get("isCompleted", False)),
            score=int(data.get("score", 0)),
            attempts=int(data.get("attempts", 0)),
            completed_at=parse_timestamp(data.get("completedAt")),
            last_attempt_at=parse_timestamp(data.get("lastAttemptAt")),
            is_first_blood=bool(data.get("isFirstBlood", False)),
        )


@dataclass
class PSScore:
    total_score: int = 0
    questions: Dict[int, QuestionProgress] = field(default_factory=dict)

    @property
    def completed_questions(self) -> int:
        return sum(1 for q in self.questions.values() if q.is_completed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalScore": self.total_score,
            "questions": {
                str(index): progress.to_dict()
                for index, progress in sorted(self.questions.items())
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PSScore":
        questions = data.get("questions") or {}
        return cls(
            total_score=int(data.get("totalScore", 0)),
            questions={
                int(index): QuestionProgress.from_dict(progress)
                for index, progress in questions.items()
            },
        )


@dataclass
class ScoreRecord:
    total_score: int = 0
    ps_scores: Dict[int, PSScore] = field(default_factory=dict)

    @classmethod
    def zeroed(
        cls,
        ps_count: int,
        questions_per_ps: int,
    ) -> "ScoreRecord":
        """
        Build a fresh record with every question present and untouched.

        @param ps_count: Number of problem statements (numbered from 1)
        @param questions_per_ps: Number of questions per problem statement (indexed from 0)
        @return: Zeroed ScoreRecord
        """
        return cls(
            total_score=0,
            ps_scores={
                ps_number: PSScore(
                    questions={
                        index: QuestionProgress()
                        for index in range(questions_per_ps)
                    }
                )
                for ps_number in range(1, ps_count + 1)
            },
        )

    def question(
        self,
        ps_number: int,
        question_index: int,
    ) -> QuestionProgress:
        """
        Return the progress entry for a question, creating it if absent.

        Records provisioned before the competition grew keep working; the
        new entry starts zeroed so no totals change.
        """
        ps_score = self.ps_scores.setdefault(ps_number, PSScore())
        return ps_score.questions.setdefault(question_index, QuestionProgress())

    def apply(
        self,
        ps_number: int,
        question_index: int,
        delta: int,
    ) -> None:
        """
        Add a score delta to a question, its PS subtotal and the grand total.

        @param ps_number: Problem statement number
        @param question_index: Question index within the problem statement
        @param delta: Signed score change
        """
        self.question(ps_number, question_index).score += delta
        self.ps_scores[ps_number].total_score += delta
        self.total_score += delta

    def is_consistent(self) -> bool:
        """Check that every subtotal equals the sum of what it aggregates."""
        for ps_score in self.ps_scores.values():
            if ps_score.total_score != sum(
                q.score for q in ps_score.questions.values()
            ):
                return False
        return self.total_score == sum(
            ps.total_score for ps in self.ps_scores.values()
        )

    def iter_questions(self):
        for ps_number, ps_score in sorted(self.ps_scores.items()):
            for index, progress in sorted(ps_score.questions.items()):
                yield ps_number, index, progress

    @property
    def completed_questions(self) -> int:
        return sum(ps.completed_questions for ps in self.ps_scores.values())

    @property
    def first_bloods(self) -> int:
        return sum(1 for _, _, q in self.iter_questions() if q.is_first_blood)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalScore": self.total_score,
            "psScores": {
                str(ps_number): ps_score.to_dict()
                for ps_number, ps_score in sorted(self.ps_scores.items())
            },
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ScoreRecord":
        if not data:
            return cls()
        ps_scores = data.get("psScores") or {}
        return cls(
            total_score=int(data.get("totalScore", 0)),
            ps_scores={
                int(ps_number): PSScore.from_dict(ps_score)
                for ps_number, ps_score in ps_scores.items()
            },
        )


@dataclass
class Team:
    id: str
    username: str
    team_name: str
    role: str = ROLE_USER
    team_members: List[str] = field(default_factory=list)
    password_hash: str = ""
    scores: Optional[ScoreRecord] = None
    version: int = 0
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "teamName": self.team_name,
            "role": self.role,
        }


@dataclass
class Question:
    question: str
    answer_hash: str
    is_case_sensitive: bool = False
    placeholder: str = ""
    hint: str = ""

    def public_dict(self) -> Dict[str, Any]:
        """Question as shown to competitors; the answer hash never leaves."""
        return {
            "question": self.question,
            "placeholder": self.placeholder,
            "hint": self.hint,
            "isCaseSensitive": self.is_case_sensitive,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.public_dict()
        data["answerHash"] = self.answer_hash
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            question=data.get("question", ""),
            answer_hash=data["answerHash"],
            is_case_sensitive=bool(data.get("isCaseSensitive", False)),
            placeholder=data.get("placeholder", ""),
            hint=data.get("hint", ""),
        )


@dataclass
class ProblemStatement:
    ps_number: int
    title: str = ""
    description: str = ""
    severity: str = ""
    link: str = ""
    questions: List[Question] = field(default_factory=list)

    def get_question(self, index: int) -> Optional[Question]:
        if 0 <= index < len(self.questions):
            return self.questions[index]
        return None

    def summary_dict(self) -> Dict[str, Any]:
        return {
            "psNumber": self.ps_number,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "link": self.link,
            "questions": [q.public_dict() for q in self.questions],
        }


@dataclass
class FirstBloodClaim:
    ps_number: int
    question_index: int
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None

    @property
    def is_claimed(self) -> bool:
        return self.claimed_by is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claimedBy": self.claimed_by,
            "claimedAt": format_timestamp(self.claimed_at),
        }


@dataclass
class Settings:
    allow_ps_access: bool = False
    show_results_to_users: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowPSAccess": self.allow_ps_access,
            "showResultsToUsers": self.show_results_to_users,
        }


@dataclass
class Identity:
    """Authenticated caller as supplied by the token layer."""

    team_id: str
    role: str


@dataclass
class ScoreResult:
    is_correct: bool
    score_change: int
    is_first_blood: bool
    ps_score: int
    total_score: int
    attempts: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isCorrect": self.is_correct,
            "scoreChange": self.score_change,
            "isFirstBlood": self.is_first_blood,
            "psScore": self.ps_score,
            "totalScore": self.total_score,
            "attempts": self.attempts,
            "message": "Solved!" if self.is_correct else "Wrong answer",
        }
