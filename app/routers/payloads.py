from app.models.suggestion import ContestantSuggestion
from app.models.tournament import Contestant, Round, Tournament
from app.models.user import User
from app.models.vote import Vote


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "is_admin": user.is_admin,
        "created_at": user.created_at.isoformat(),
    }


def tournament_payload(tournament: Tournament) -> dict:
    return {
        "id": tournament.id,
        "name": tournament.name,
        "slug": tournament.slug,
        "description": tournament.description,
        "image_url": tournament.image_url,
        "status": tournament.status,
        "bracket_type": tournament.bracket_type,
        "size": tournament.size,
        "max_contestants": tournament.max_contestants,
        "quadrant_names": tournament.quadrant_names,
        "voting_duration_hours": tournament.voting_duration_hours,
        "is_public": tournament.is_public,
        "allow_ties": tournament.allow_ties,
        "created_by": tournament.created_by,
        "created_at": tournament.created_at.isoformat(),
    }


def contestant_payload(contestant: Contestant) -> dict:
    return {
        "id": contestant.id,
        "tournament_id": contestant.tournament_id,
        "name": contestant.name,
        "description": contestant.description,
        "image_url": contestant.image_url,
        "position": contestant.position,
        "seed": contestant.seed,
        "quadrant": contestant.quadrant,
        "eliminated_round": contestant.eliminated_round,
        "is_active": contestant.is_active,
        "votes_received": contestant.votes_received,
        "wins": contestant.wins,
        "losses": contestant.losses,
    }


def round_payload(round_: Round) -> dict:
    return {
        "id": round_.id,
        "round_number": round_.round_number,
        "name": round_.name,
        "status": round_.status,
        "total_matchups": round_.total_matchups,
        "locked": round_.locked_at is not None,
    }


def vote_payload(vote: Vote) -> dict:
    return {
        "id": vote.id,
        "matchup_id": vote.matchup_id,
        "contestant_id": vote.selected_contestant_id,
        "is_admin_vote": vote.is_admin_vote,
        "weight": vote.weight,
        "created_at": vote.created_at.isoformat(),
    }


def suggestion_payload(suggestion: ContestantSuggestion, user_has_voted: bool = False) -> dict:
    return {
        "id": suggestion.id,
        "tournament_id": suggestion.tournament_id,
        "name": suggestion.name,
        "description": suggestion.description,
        "image_url": suggestion.image_url,
        "vote_count": suggestion.vote_count,
        "status": suggestion.status,
        "admin_notes": suggestion.admin_notes,
        "user_has_voted": user_has_voted,
    }
