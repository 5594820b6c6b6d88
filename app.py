#!/usr/bin/env python3
"""
CTF scoring service: serves the JSON web interface and provides the
provisioning commands used before an event.
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys
from pathlib import Path

from ctfscore.auth import hash_password
from ctfscore.errors import ScoringError
from ctfscore.scoreboard import ScoreboardSystem
from ctfscore.seed import (
    load_problem_statements,
    load_teams,
    seed_problem_statements,
    seed_teams,
)

logger = logging.getLogger("ctfscore")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CTF scoring service with first-blood tracking",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--web-port",
        type=int,
        default=int(os.getenv("WEB_PORT", "5000")),
        help="Web interface port (env: WEB_PORT)"
    )
    parser.add_argument(
        "--db",
        default=os.getenv("DB_PATH"),
        help="SQLite database file path (env: DB_PATH, default from config)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "ctf_config.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (env: HOST)"
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (env: LOG_LEVEL)"
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the web server (default)")

    seed_content = subparsers.add_parser(
        "seed-content", help="Replace problem statements and reset first bloods"
    )
    seed_content.add_argument("file", help="Problem statements JSON file")

    seed_team = subparsers.add_parser("seed-teams", help="Insert or replace teams")
    seed_team.add_argument("file", help="Teams JSON file")

    subparsers.add_parser("reset", help="Delete all teams, content and first bloods")
    subparsers.add_parser("scoreboard", help="Print the current scoreboard")

    hash_cmd = subparsers.add_parser("hash-password", help="Print a bcrypt hash")
    hash_cmd.add_argument("password", nargs="?", help="Password (prompted if omitted)")

    return parser


async def run(args: argparse.Namespace) -> int:
    config_path = Path(args.config)

    if config_path.exists() and not config_path.is_file():
        logger.error("%s exists but is not a file", args.config)
        return 1

    system = ScoreboardSystem(
        host=args.host,
        web_port=args.web_port,
        db_path=args.db,
        config_path=args.config,
    )

    command = args.command or "serve"

    if command == "hash-password":
        password = args.password or getpass.getpass("Password: ")
        print(hash_password(password, system.config.get("auth", "bcrypt_rounds")))
        return 0

    await system.init_db()

    if command == "seed-content":
        problem_statements = load_problem_statements(args.file)
        await seed_problem_statements(system.db, system.ledger, problem_statements)
        logger.info("Seeded %d problem statements", len(problem_statements))
    elif command == "seed-teams":
        teams = await load_teams(args.file, system.config)
        await seed_teams(system.db, teams)
        logger.info("Provisioned %d teams", len(teams))
    elif command == "reset":
        await system.db.reset_competition()
    elif command == "scoreboard":
        await system.print_full_scoreboard()
    else:
        await system.print_full_scoreboard()
        await system.run_web_server()

    return 0


def main() -> int:
    """Main function with command line interface."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Server interrupted")
        return 0
    except (ScoringError, OSError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
