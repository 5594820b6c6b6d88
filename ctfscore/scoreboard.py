"""
Main ScoreboardSystem class that orchestrates all components.
"""

import asyncio
import logging
from typing import Optional

from aiohttp import web, web_runner
import aiohttp_cors

from .access import AccessGate, SettingsStore
from .auth import TokenSigner, auth_middleware
from .config import CTFConfig
from .database import DatabaseManager
from .engine import ScoringEngine
from .leaderboard import build_leaderboard
from .ledger import FirstBloodLedger
from .models import ROLE_USER
from .web_handlers import WebHandlers, error_middleware

logger = logging.getLogger(__name__)


class ScoreboardSystem:
    """CTF scoring service with a JSON web interface."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        web_port: int = 5000,
        db_path: Optional[str] = None,
        config_path: str = "ctf_config.json",
        config: Optional[CTFConfig] = None,
    ) -> None:
        self.host = host
        self.web_port = web_port

        # Load configuration
        self.config = config or CTFConfig(config_path)
        self.db_path = db_path or self.config.get("database", "path")

        # Initialize components
        self.db = DatabaseManager(self.db_path, self.config)
        self.settings = SettingsStore(self.db)
        self.gate = AccessGate(self.settings)
        self.ledger = FirstBloodLedger(self.db)
        self.engine = ScoringEngine(self.db, self.config, self.gate, self.ledger)
        self.signer = TokenSigner(
            self.config.get("auth", "secret_key"),
            self.config.get("auth", "token_max_age"),
        )
        self.web_handlers = WebHandlers(
            self.db,
            self.config,
            self.engine,
            self.gate,
            self.settings,
            self.ledger,
            self.signer,
        )

    async def init_db(self) -> None:
        """
        Initialize the database.

        Creates database tables and performs any necessary setup.
        """
        await self.db.init_db()

    def create_app(self) -> web.Application:
        """
        Build the web application with all routes registered.

        @return: aiohttp Application
        """
        app = web.Application(
            middlewares=[error_middleware, auth_middleware(self.signer)]
        )
        handlers = self.web_handlers

        # Setup CORS
        cors = aiohttp_cors.setup(
            app,
            defaults={
                "*": aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods="*",
                )
            },
        )

        app.router.add_get("/health", handlers.health)
        app.router.add_post("/auth/login", handlers.login)

        # User routes
        app.router.add_get("/user/dashboard", handlers.dashboard)
        app.router.add_get("/user/ps/{number}", handlers.problem_statement)
        app.router.add_post(
            "/user/ps/{number}/check/{question_index}", handlers.check_answer
        )
        app.router.add_get("/user/leaderboard", handlers.user_leaderboard)
        app.router.add_get("/user/scoreboard", handlers.user_leaderboard)
        app.router.add_get("/user/score-timeline", handlers.user_score_timeline)

        # Conditionally expose the toggles to competitors
        if self.config.is_feature_enabled("public_settings"):
            app.router.add_get("/user/settings", handlers.user_settings)

        # Admin routes
        app.router.add_get("/admin/submissions", handlers.admin_submissions)
        app.router.add_get("/admin/firstbloods", handlers.admin_first_bloods)
        app.router.add_get("/admin/scoreboard", handlers.admin_scoreboard)
        app.router.add_get("/admin/score-timeline", handlers.admin_score_timeline)
        app.router.add_get(
            "/admin/problemstatements", handlers.admin_problem_statements
        )
        app.router.add_get("/admin/settings", handlers.admin_get_settings)
        app.router.add_put("/admin/settings", handlers.admin_update_settings)

        # Add CORS to all routes
        for route in list(app.router.routes()):
            cors.add(route)

        return app

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind the server to (default uses configured host)
        @param port: Port number to use (default uses configured web_port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.host
        if port is None:
            port = self.web_port

        app_runner = web_runner.AppRunner(self.create_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        logger.info("Web server running on http://%s:%s", host, port)
        return app_runner

    async def run_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        """
        Run the web server until interrupted.

        @param host: Host address (default uses configured host)
        @param port: Port number (default uses configured web_port)
        """
        web_server_runner = await self.start_web_server(host, port)
        logger.info("%s scoring service running. Press Ctrl+C to stop.", self.config.get("ctf_name"))

        try:
            await asyncio.Event().wait()
        finally:
            logger.info("Shutting down web server...")
            await web_server_runner.cleanup()

    async def print_full_scoreboard(self) -> None:
        """
        Print the ranked scoreboard to console.

        Displays every user team with its rank, total, solves and first bloods.
        """
        print("\n" + "=" * 60)
        print(f"{self.config.get('ctf_name')} SCOREBOARD")
        print("=" * 60)

        teams = await self.db.list_teams(ROLE_USER)
        leaderboard = build_leaderboard(teams, include_private=True)

        if not leaderboard:
            print("Scoreboard is empty")
            return

        for entry in leaderboard:
            tie_indicator = " (tie)" if entry["isTied"] else ""
            print(
                f"{entry['rank']:2d}. {entry['teamName']:<20} "
                f"Score: {entry['totalScore']:5d}  "
                f"Solved: {entry['completedQuestions']:3d}  "
                f"First bloods: {entry['firstBloods']:2d}{tie_indicator}"
            )
