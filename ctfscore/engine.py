"""
Answer checking and scoring.
"""

import logging
from datetime import datetime
from typing import Any, Callable

from .access import AccessGate
from .errors import AlreadyCompleted, InvalidRequest, NotFound
from .ledger import FirstBloodLedger
from .models import ScoreResult, utcnow
from .normalizer import answer_matches

logger = logging.getLogger(__name__)


class ScoringEngine:
    """Validates submissions, applies score deltas and claims first blood."""

    def __init__(
        self,
        db_manager: Any,
        config: Any,
        gate: AccessGate,
        ledger: FirstBloodLedger,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db_manager
        self.config = config
        self.gate = gate
        self.ledger = ledger
        self.clock = clock

    @property
    def first_blood_score(self) -> int:
        if not self.config.is_feature_enabled("first_blood"):
            return self.standard_score
        return self.config.get("scoring", "first_blood_score")

    @property
    def standard_score(self) -> int:
        return self.config.get("scoring", "standard_score")

    @property
    def wrong_answer_penalty(self) -> int:
        if not self.config.is_feature_enabled("wrong_answer_penalty"):
            return 0
        return self.config.get("scoring", "wrong_answer_penalty")

    def validate_location(
        self,
        ps_number: Any,
        question_index: Any,
    ) -> None:
        """
        Check that a problem statement number and question index are in range.

        @param ps_number: Problem statement number, 1-based
        @param question_index: Question index, 0-based
        """
        if not _is_int(ps_number) or not 1 <= ps_number <= self.config.ps_count:
            raise InvalidRequest("Invalid problem statement number")
        if not _is_int(question_index) or not (
            0 <= question_index < self.config.questions_per_ps
        ):
            raise InvalidRequest("Invalid question index")

    def validate_answer(self, answer: Any) -> None:
        if not isinstance(answer, str) or not answer:
            raise InvalidRequest("Answer is required")
        if len(answer) > self.config.get("submission", "max_answer_length"):
            raise InvalidRequest("Answer too long")

    async def check_answer(
        self,
        team_id: str,
        ps_number: int,
        question_index: int,
        answer: str,
    ) -> ScoreResult:
        """
        Check a submitted answer and apply its score.

        Validation fails fast without touching storage. The read of the team
        record, the first-blood claim and the write of the mutated score
        tree all happen inside one transaction; the result is returned only
        after that transaction commits.

        @param team_id: Authenticated team identifier
        @param ps_number: Problem statement number
        @param question_index: Question index within the problem statement
        @param answer: Submitted answer text
        @return: ScoreResult describing the applied change
        """
        self.validate_location(ps_number, question_index)
        await self.gate.ensure_open()
        self.validate_answer(answer)

        async with self.db.transaction() as db:
            team = await self.db.fetch_team(db, team_id)
            if team is None or team.scores is None:
                raise NotFound("Team not found")

            scores = team.scores
            progress = scores.question(ps_number, question_index)
            if progress.is_completed:
                raise AlreadyCompleted("Question already completed")

            problem_statement = await self.db.fetch_problem_statement(db, ps_number)
            if problem_statement is None:
                raise NotFound("Problem statement not found")
            question = problem_statement.get_question(question_index)
            if question is None:
                raise NotFound("Question not found")

            now = self.clock()
            progress.attempts += 1
            progress.last_attempt_at = now

            is_correct = answer_matches(
                answer, question.answer_hash, question.is_case_sensitive
            )
            is_first_blood = False

            if is_correct:
                if self.config.is_feature_enabled("first_blood"):
                    is_first_blood = await self.ledger.try_claim(
                        db, ps_number, question_index, team.id, now
                    )
                delta = self.first_blood_score if is_first_blood else self.standard_score
                progress.is_completed = True
                progress.completed_at = now
                progress.is_first_blood = is_first_blood
            else:
                delta = self.wrong_answer_penalty

            scores.apply(ps_number, question_index, delta)
            await self.db.save_scores(db, team)

        result = ScoreResult(
            is_correct=is_correct,
            score_change=delta,
            is_first_blood=is_first_blood,
            ps_score=scores.ps_scores[ps_number].total_score,
            total_score=scores.total_score,
            attempts=progress.attempts,
        )
        logger.info(
            "Answer check: team=%s ps=%s question=%s correct=%s delta=%+d first_blood=%s",
            team.id,
            ps_number,
            question_index,
            is_correct,
            delta,
            is_first_blood,
        )
        return result


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
