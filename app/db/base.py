"""Регистрирует ORM-модели в метаданных SQLAlchemy."""

from app.models.base import Base
from app.models.suggestion import ContestantSuggestion, SuggestionVote
from app.models.tournament import Contestant, Matchup, Round, Tournament
from app.models.user import User
from app.models.vote import Vote

__all__ = [
    "Base",
    "User",
    "Tournament",
    "Contestant",
    "Round",
    "Matchup",
    "Vote",
    "ContestantSuggestion",
    "SuggestionVote",
]
