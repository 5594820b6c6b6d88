"""
CTF Scoring Engine - answer checking and scoring for timed team CTF events.

This package provides:
- Answer checking against hashed canonical answers
- First-blood bonuses claimed atomically per question
- Wrong-answer penalties and per-question attempt tracking
- Admin-controlled access and results visibility
- JSON web interface with leaderboard and score timeline
"""

from .config import CTFConfig
from .database import DatabaseManager
from .engine import ScoringEngine
from .ledger import FirstBloodLedger
from .access import AccessGate, SettingsStore
from .web_handlers import WebHandlers
from .scoreboard import ScoreboardSystem

__version__ = "1.0.0"
__author__ = "CTF Scoring Contributors"

__all__ = [
    "CTFConfig",
    "DatabaseManager",
    "ScoringEngine",
    "FirstBloodLedger",
    "AccessGate",
    "SettingsStore",
    "WebHandlers",
    "ScoreboardSystem",
]
