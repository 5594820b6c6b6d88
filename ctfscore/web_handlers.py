"""
Web route handlers for the CTF scoring service.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict

from aiohttp import web

from .access import AccessGate, SettingsStore
from .auth import IDENTITY_KEY, TokenSigner, require_role, verify_password
from .engine import ScoringEngine
from .errors import InvalidRequest, NotFound, ScoringError, Unauthorized
from .leaderboard import build_leaderboard, build_timeline
from .ledger import FirstBloodLedger
from .models import ROLE_ADMIN, ROLE_USER, QuestionProgress, format_timestamp

logger = logging.getLogger(__name__)


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Render ScoringError as JSON; anything unexpected becomes a 500."""
    try:
        return await handler(request)
    except ScoringError as e:
        return web.json_response(e.to_dict(), status=e.status)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response(
            {"error": "server_error", "message": "Server error"}, status=500
        )


def _int_param(request: web.Request, name: str, message: str) -> int:
    try:
        return int(request.match_info[name])
    except (KeyError, ValueError):
        raise InvalidRequest(message)


async def _json_body(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequest("Request body must be JSON")
    if not isinstance(body, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return body


class WebHandlers:
    """Handles web routes and responses."""

    def __init__(
        self,
        db_manager: Any,
        config: Any,
        engine: ScoringEngine,
        gate: AccessGate,
        settings_store: SettingsStore,
        ledger: FirstBloodLedger,
        signer: TokenSigner,
    ) -> None:
        self.db = db_manager
        self.config = config
        self.engine = engine
        self.gate = gate
        self.settings = settings_store
        self.ledger = ledger
        self.signer = signer

    async def health(
        self,
        _: web.Request,
    ) -> web.Response:
        return web.json_response({"name": self.config.get("ctf_name"), "status": "ok"})

    async def login(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Exchange a username and password for a bearer token.

        @param request: HTTP request with JSON {username, password}
        @return: JSON response with token and public team info
        """
        body = await _json_body(request)
        username = body.get("username")
        password = body.get("password")
        if not isinstance(username, str) or not isinstance(password, str):
            raise InvalidRequest("Username and password are required")

        team = await self.db.get_team_by_username(username)
        if team is None or not await verify_password(password, team.password_hash):
            raise Unauthorized("Invalid credentials")

        logger.info("Login: %s (%s)", team.username, team.role)
        return web.json_response(
            {"token": self.signer.issue(team), "user": team.public_dict()}
        )

    # User routes

    async def _own_team(self, request: web.Request):
        identity = request[IDENTITY_KEY]
        team = await self.db.get_team(identity.team_id)
        if team is None:
            raise NotFound("Team not found")
        return team

    @require_role(ROLE_USER)
    async def dashboard(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Team dashboard: every problem statement with the team's progress.

        @param request: Authenticated HTTP request
        @return: JSON response with team name, total and per-PS progress
        """
        team = await self._own_team(request)
        scores = team.scores
        problem_statements = await self.db.list_problem_statements()

        progress = []
        for ps in problem_statements:
            ps_score = scores.ps_scores.get(ps.ps_number) if scores else None
            progress.append(
                {
                    "psNumber": ps.ps_number,
                    "title": ps.title,
                    "severity": ps.severity,
                    "totalQuestions": len(ps.questions),
                    "completedQuestions": ps_score.completed_questions if ps_score else 0,
                    "score": ps_score.total_score if ps_score else 0,
                }
            )

        return web.json_response(
            {
                "teamName": team.team_name,
                "totalScore": scores.total_score if scores else 0,
                "problemStatements": progress,
            }
        )

    @require_role(ROLE_USER)
    async def problem_statement(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        One problem statement with answers stripped and progress merged in.

        @param request: Authenticated HTTP request with {number}
        @return: JSON response with questions and per-question progress
        """
        ps_number = _int_param(request, "number", "Invalid problem statement number")
        if not 1 <= ps_number <= self.config.ps_count:
            raise InvalidRequest("Invalid problem statement number")

        await self.gate.ensure_open()

        team = await self._own_team(request)
        ps = await self.db.get_problem_statement(ps_number)
        if ps is None:
            raise NotFound("Problem statement not found")

        ps_score = team.scores.ps_scores.get(ps_number) if team.scores else None
        questions = []
        for index, question in enumerate(ps.questions):
            progress = (
                ps_score.questions.get(index) if ps_score else None
            ) or QuestionProgress()
            entry = {"index": index}
            entry.update(question.public_dict())
            entry.update(
                {
                    "isCompleted": progress.is_completed,
                    "score": progress.score,
                    "attempts": progress.attempts,
                    "completedAt": format_timestamp(progress.completed_at),
                    "isFirstBlood": progress.is_first_blood,
                }
            )
            questions.append(entry)

        return web.json_response(
            {
                "psNumber": ps.ps_number,
                "title": ps.title,
                "description": ps.description,
                "severity": ps.severity,
                "link": ps.link,
                "questions": questions,
                "totalScore": ps_score.total_score if ps_score else 0,
            }
        )

    @require_role(ROLE_USER)
    async def check_answer(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Check an answer for one question.

        @param request: Authenticated HTTP request with {number}, {question_index} and JSON {answer}
        @return: JSON response with the score result
        """
        ps_number = _int_param(request, "number", "Invalid problem statement number")
        question_index = _int_param(request, "question_index", "Invalid question index")
        try:
            body = await _json_body(request)
        except InvalidRequest:
            # Reported by the engine after the range and access checks
            body = {}
        result = await self.engine.check_answer(
            request[IDENTITY_KEY].team_id,
            ps_number,
            question_index,
            body.get("answer"),
        )
        return web.json_response(result.to_dict())

    @require_role(ROLE_USER)
    async def user_leaderboard(
        self,
        request: web.Request,
    ) -> web.Response:
        await self.gate.ensure_results_visible(request[IDENTITY_KEY])
        teams = await self.db.list_teams(ROLE_USER)
        return web.json_response(build_leaderboard(teams))

    @require_role(ROLE_USER)
    async def user_score_timeline(
        self,
        request: web.Request,
    ) -> web.Response:
        await self.gate.ensure_results_visible(request[IDENTITY_KEY])
        teams = await self.db.list_teams(ROLE_USER)
        return web.json_response(build_timeline(teams))

    @require_role(ROLE_USER)
    async def user_settings(
        self,
        _: web.Request,
    ) -> web.Response:
        settings = await self.settings.get()
        return web.json_response(settings.to_dict())

    # Admin routes

    @require_role(ROLE_ADMIN)
    async def admin_submissions(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Full progress grid for every user team.

        @param _: Authenticated HTTP request
        @return: JSON list of teams with per-PS, per-question progress
        """
        teams = await self.db.list_teams(ROLE_USER)
        ps_count = self.config.ps_count
        questions_per_ps = self.config.questions_per_ps

        result = []
        for team in teams:
            scores = team.scores
            ps_progress = {}
            for ps_number in range(1, ps_count + 1):
                ps_score = scores.ps_scores.get(ps_number) if scores else None
                ps_progress[str(ps_number)] = {
                    "totalScore": ps_score.total_score if ps_score else 0,
                    "questions": {
                        str(index): (
                            (ps_score.questions.get(index) if ps_score else None)
                            or QuestionProgress()
                        ).to_dict()
                        for index in range(questions_per_ps)
                    },
                }
            result.append(
                {
                    "teamId": team.id,
                    "teamName": team.team_name,
                    "username": team.username,
                    "teamMembers": team.team_members,
                    "totalScore": scores.total_score if scores else 0,
                    "psProgress": ps_progress,
                }
            )

        result.sort(key=lambda t: (-t["totalScore"], t["teamName"]))
        return web.json_response(result)

    @require_role(ROLE_ADMIN)
    async def admin_first_bloods(
        self,
        _: web.Request,
    ) -> web.Response:
        claims = await self.ledger.list_claims()
        return web.json_response(
            {
                str(ps_number): {
                    str(claim.question_index): claim.to_dict() for claim in ps_claims
                }
                for ps_number, ps_claims in claims.items()
            }
        )

    @require_role(ROLE_ADMIN)
    async def admin_scoreboard(
        self,
        _: web.Request,
    ) -> web.Response:
        teams = await self.db.list_teams(ROLE_USER)
        return web.json_response(build_leaderboard(teams, include_private=True))

    @require_role(ROLE_ADMIN)
    async def admin_score_timeline(
        self,
        _: web.Request,
    ) -> web.Response:
        teams = await self.db.list_teams(ROLE_USER)
        return web.json_response(build_timeline(teams))

    @require_role(ROLE_ADMIN)
    async def admin_problem_statements(
        self,
        _: web.Request,
    ) -> web.Response:
        problem_statements = await self.db.list_problem_statements()
        return web.json_response([ps.summary_dict() for ps in problem_statements])

    @require_role(ROLE_ADMIN)
    async def admin_get_settings(
        self,
        _: web.Request,
    ) -> web.Response:
        settings = await self.settings.get()
        return web.json_response(settings.to_dict())

    @require_role(ROLE_ADMIN)
    async def admin_update_settings(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Partially update the competition toggles.

        @param request: Authenticated HTTP request with JSON {allowPSAccess?, showResultsToUsers?}
        @return: JSON response with the settings after the update
        """
        body = await _json_body(request)
        updates = {}
        for key, field_name in (
            ("allowPSAccess", "allow_ps_access"),
            ("showResultsToUsers", "show_results_to_users"),
        ):
            if key in body:
                if not isinstance(body[key], bool):
                    raise InvalidRequest(f"{key} must be a boolean")
                updates[field_name] = body[key]

        settings = await self.settings.update(**updates)
        response = {"message": "Settings updated successfully"}
        response.update(settings.to_dict())
        return web.json_response(response)
