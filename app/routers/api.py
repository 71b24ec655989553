"""Публичные маршруты: регистрация, турниры, участники, голосование и предложения."""

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.session import SESSION_COOKIE
from app.db.session import get_db
from app.routers.deps import current_session, error_response, require_user, set_session_cookie
from app.routers.payloads import (
    contestant_payload,
    round_payload,
    suggestion_payload,
    tournament_payload,
    user_payload,
    vote_payload,
)
from app.services.contestants import (
    add_contestant,
    auto_seed,
    delete_contestant,
    generate_placeholder_contestants,
    get_contestant,
    list_contestants,
    set_seeds,
    update_contestant,
)
from app.services.errors import ServiceError
from app.services.suggestions import (
    bulk_moderate,
    get_suggestion_analytics,
    list_suggestions,
    moderate_suggestion,
    remove_suggestion_vote,
    submit_suggestion,
    vote_for_suggestion,
)
from app.services.tournaments import (
    change_status,
    create_tournament,
    delete_tournament,
    ensure_can_manage,
    ensure_can_view,
    get_bracket_data,
    get_tournament,
    get_tournament_stats,
    list_tournaments,
    start_tournament,
    update_tournament,
)
from app.services.users import authenticate, get_user, register_user
from app.services.voting import (
    cast_vote,
    delete_vote,
    get_matchup,
    get_matchup_results,
    get_user_vote,
    get_user_votes_for_tournament,
    get_vote_history,
    get_voting_status,
)

router = APIRouter()


def split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_int_list(value: str) -> list[int]:
    try:
        return [int(item) for item in split_csv(value)]
    except ValueError as exc:
        raise ServiceError("Expected a comma-separated list of ids") from exc


def parse_seed_map(value: str) -> dict[int, int]:
    # Формат: "contestant_id:seed,contestant_id:seed"
    seeds: dict[int, int] = {}
    for item in split_csv(value):
        contestant_id, _, seed = item.partition(":")
        try:
            seeds[int(contestant_id)] = int(seed)
        except ValueError as exc:
            raise ServiceError(f"Invalid seed entry {item}") from exc
    return seeds


@router.get("/health")
async def health():
    return {"ok": True}


@router.post("/auth/register")
async def auth_register(
    username: str = Form(...),
    email: str = Form(...),
    display_name: str = Form(default=""),
    db: AsyncSession = Depends(get_db),
):
    """Регистрирует пользователя и сразу открывает сессию; токен показывается один раз."""
    try:
        user, token = await register_user(db, username=username, email=email, display_name=display_name)
    except ServiceError as exc:
        return error_response(exc)
    response = JSONResponse({"ok": True, "user": user_payload(user), "access_token": token})
    return set_session_cookie(response, user.id, is_admin=user.is_admin)


@router.post("/auth/login")
async def auth_login(
    username: str = Form(...),
    access_token: str = Form(...),
    db: AsyncSession = Depends(get_db),
):
    try:
        user = await authenticate(db, username=username, access_token=access_token)
    except ServiceError as exc:
        return error_response(exc)
    response = JSONResponse({"ok": True, "user": user_payload(user)})
    return set_session_cookie(response, user.id, is_admin=user.is_admin)


@router.post("/auth/logout")
async def auth_logout():
    response = JSONResponse({"ok": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me")
async def me(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        session = await require_user(request, db)
        user = await get_user(db, session.user_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "user": user_payload(user)}


@router.get("/me/votes")
async def my_vote_history(
    request: Request,
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    db: AsyncSession = Depends(get_db),
):
    try:
        session = await require_user(request, db)
        history = await get_vote_history(db, session.user_id, page=page, page_size=page_size)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **history}


@router.get("/tournaments")
async def tournaments_list(
    request: Request,
    status: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    tournaments = await list_tournaments(db, status=status, viewer=await current_session(request, db))
    return {"ok": True, "tournaments": [tournament_payload(t) for t in tournaments]}


@router.post("/tournaments")
async def tournaments_create(
    request: Request,
    name: str = Form(...),
    size: int = Form(...),
    description: str = Form(default=""),
    image_url: str = Form(default=""),
    quadrant_names: str = Form(default=""),
    voting_duration_hours: int = Form(default=24),
    is_public: bool = Form(default=True),
    allow_ties: bool = Form(default=False),
    db: AsyncSession = Depends(get_db),
):
    try:
        session = await require_user(request, db)
        tournament = await create_tournament(
            db,
            creator_id=session.user_id,
            name=name,
            size=size,
            description=description,
            image_url=image_url,
            quadrant_names=split_csv(quadrant_names) or None,
            voting_duration_hours=voting_duration_hours,
            is_public=is_public,
            allow_ties=allow_ties,
        )
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "tournament": tournament_payload(tournament)}


@router.get("/tournaments/{identifier}")
async def tournaments_detail(identifier: str, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        tournament = await get_tournament(db, identifier)
        ensure_can_view(tournament, await current_session(request, db))
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "tournament": tournament_payload(tournament)}


@router.post("/tournaments/{tournament_id}/update")
async def tournaments_update(
    tournament_id: int,
    request: Request,
    name: str | None = Form(default=None),
    description: str | None = Form(default=None),
    image_url: str | None = Form(default=None),
    size: int | None = Form(default=None),
    quadrant_names: str | None = Form(default=None),
    voting_duration_hours: int | None = Form(default=None),
    is_public: bool | None = Form(default=None),
    allow_ties: bool | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        tournament = await update_tournament(
            db,
            tournament,
            name=name,
            description=description,
            image_url=image_url,
            size=size,
            quadrant_names=split_csv(quadrant_names) if quadrant_names is not None else None,
            voting_duration_hours=voting_duration_hours,
            is_public=is_public,
            allow_ties=allow_ties,
        )
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "tournament": tournament_payload(tournament)}


@router.post("/tournaments/{tournament_id}/status")
async def tournaments_status(
    tournament_id: int,
    request: Request,
    status: str = Form(...),
    db: AsyncSession = Depends(get_db),
):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        tournament = await change_status(db, tournament, status)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "tournament": tournament_payload(tournament)}


@router.post("/tournaments/{tournament_id}/start")
async def tournaments_start(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        rounds = await start_tournament(db, tournament)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "tournament": tournament_payload(tournament), "rounds": [round_payload(r) for r in rounds]}


@router.post("/tournaments/{tournament_id}/delete")
async def tournaments_delete(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        await delete_tournament(db, tournament)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True}


@router.get("/tournaments/{tournament_id}/bracket")
async def tournaments_bracket(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        ensure_can_view(await get_tournament(db, tournament_id), await current_session(request, db))
        bracket = await get_bracket_data(db, tournament_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **bracket}


@router.get("/tournaments/{tournament_id}/stats")
async def tournaments_stats(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        ensure_can_view(await get_tournament(db, tournament_id), await current_session(request, db))
        stats = await get_tournament_stats(db, tournament_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **stats}


@router.get("/tournaments/{tournament_id}/contestants")
async def contestants_list(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        ensure_can_view(await get_tournament(db, tournament_id), await current_session(request, db))
    except ServiceError as exc:
        return error_response(exc)
    contestants = await list_contestants(db, tournament_id)
    return {"ok": True, "contestants": [contestant_payload(c) for c in contestants]}


@router.post("/tournaments/{tournament_id}/contestants")
async def contestants_add(
    tournament_id: int,
    request: Request,
    name: str = Form(...),
    description: str = Form(default=""),
    image_url: str = Form(default=""),
    seed: int | None = Form(default=None),
    quadrant: int | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        contestant = await add_contestant(
            db,
            tournament,
            name=name,
            description=description,
            image_url=image_url,
            seed=seed,
            quadrant=quadrant,
        )
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "contestant": contestant_payload(contestant)}


@router.post("/tournaments/{tournament_id}/contestants/seeds")
async def contestants_set_seeds(
    tournament_id: int,
    request: Request,
    seeds: str = Form(...),
    db: AsyncSession = Depends(get_db),
):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        contestants = await set_seeds(db, tournament, parse_seed_map(seeds))
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "contestants": [contestant_payload(c) for c in contestants]}


@router.post("/tournaments/{tournament_id}/contestants/auto-seed")
async def contestants_auto_seed(
    tournament_id: int,
    request: Request,
    method: str = Form(default="random"),
    db: AsyncSession = Depends(get_db),
):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        contestants = await auto_seed(db, tournament, method)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "contestants": [contestant_payload(c) for c in contestants]}


@router.post("/tournaments/{tournament_id}/contestants/placeholders")
async def contestants_placeholders(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        tournament = await get_tournament(db, tournament_id)
        ensure_can_manage(tournament, await current_session(request, db))
        contestants = await generate_placeholder_contestants(db, tournament)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "contestants": [contestant_payload(c) for c in contestants]}


@router.post("/contestants/{contestant_id}/update")
async def contestants_update(
    contestant_id: int,
    request: Request,
    name: str | None = Form(default=None),
    description: str | None = Form(default=None),
    image_url: str | None = Form(default=None),
    seed: int | None = Form(default=None),
    quadrant: int | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        contestant = await get_contestant(db, contestant_id)
        ensure_can_manage(await get_tournament(db, contestant.tournament_id), await current_session(request, db))
        contestant = await update_contestant(
            db,
            contestant,
            name=name,
            description=description,
            image_url=image_url,
            seed=seed,
            quadrant=quadrant,
        )
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "contestant": contestant_payload(contestant)}


@router.post("/contestants/{contestant_id}/delete")
async def contestants_delete(contestant_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        contestant = await get_contestant(db, contestant_id)
        ensure_can_manage(await get_tournament(db, contestant.tournament_id), await current_session(request, db))
        await delete_contestant(db, contestant)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True}


@router.post("/matchups/{matchup_id}/vote")
async def matchups_vote(
    matchup_id: int,
    request: Request,
    contestant_id: int = Form(...),
    db: AsyncSession = Depends(get_db),
):
    try:
        session = await require_user(request, db)
        await get_user(db, session.user_id)
        vote = await cast_vote(db, user_id=session.user_id, matchup_id=matchup_id, contestant_id=contestant_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "vote": vote_payload(vote)}


@router.post("/matchups/{matchup_id}/vote/delete")
async def matchups_vote_delete(matchup_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        session = await require_user(request, db)
        await delete_vote(db, user_id=session.user_id, matchup_id=matchup_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True}


@router.get("/matchups/{matchup_id}/my-vote")
async def matchups_my_vote(matchup_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        session = await require_user(request, db)
    except ServiceError as exc:
        return error_response(exc)
    vote = await get_user_vote(db, session.user_id, matchup_id)
    return {"ok": True, "vote": vote_payload(vote) if vote else None}


@router.get("/matchups/{matchup_id}/results")
async def matchups_results(matchup_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        matchup = await get_matchup(db, matchup_id)
        ensure_can_view(await get_tournament(db, matchup.tournament_id), await current_session(request, db))
        results = await get_matchup_results(db, matchup_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **results}


@router.get("/tournaments/{tournament_id}/voting-status")
async def tournaments_voting_status(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        session = await require_user(request, db)
        ensure_can_view(await get_tournament(db, tournament_id), session)
        status = await get_voting_status(db, session.user_id, tournament_id)
        votes = await get_user_votes_for_tournament(db, session.user_id, tournament_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **status, "votes": [vote_payload(v) for v in votes]}


@router.get("/tournaments/{tournament_id}/suggestions")
async def suggestions_list(
    tournament_id: int,
    request: Request,
    status: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    session = await current_session(request, db)
    try:
        ensure_can_view(await get_tournament(db, tournament_id), session)
    except ServiceError as exc:
        return error_response(exc)
    items = await list_suggestions(
        db,
        tournament_id,
        status=status,
        user_id=session.user_id if session else None,
    )
    return {
        "ok": True,
        "suggestions": [suggestion_payload(item["suggestion"], item["user_has_voted"]) for item in items],
    }


@router.post("/tournaments/{tournament_id}/suggestions")
async def suggestions_submit(
    tournament_id: int,
    request: Request,
    name: str = Form(...),
    description: str = Form(default=""),
    image_url: str = Form(default=""),
    db: AsyncSession = Depends(get_db),
):
    try:
        session = await require_user(request, db)
        suggestion = await submit_suggestion(
            db,
            tournament_id,
            user_id=session.user_id,
            name=name,
            description=description,
            image_url=image_url,
        )
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "suggestion": suggestion_payload(suggestion)}


@router.get("/tournaments/{tournament_id}/suggestions/analytics")
async def suggestions_analytics(tournament_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        ensure_can_manage(await get_tournament(db, tournament_id), await current_session(request, db))
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **await get_suggestion_analytics(db, tournament_id)}


@router.post("/suggestions/{suggestion_id}/vote")
async def suggestions_vote(suggestion_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        session = await require_user(request, db)
        suggestion = await vote_for_suggestion(db, suggestion_id, session.user_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "suggestion": suggestion_payload(suggestion, user_has_voted=True)}


@router.post("/suggestions/{suggestion_id}/unvote")
async def suggestions_unvote(suggestion_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        session = await require_user(request, db)
        suggestion = await remove_suggestion_vote(db, suggestion_id, session.user_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "suggestion": suggestion_payload(suggestion)}


@router.post("/suggestions/{suggestion_id}/moderate")
async def suggestions_moderate(
    suggestion_id: int,
    request: Request,
    status: str = Form(...),
    admin_notes: str | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        suggestion = await moderate_suggestion(
            db, suggestion_id, status, await current_session(request, db), admin_notes=admin_notes
        )
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "suggestion": suggestion_payload(suggestion)}


@router.post("/suggestions/bulk")
async def suggestions_bulk(
    request: Request,
    suggestion_ids: str = Form(...),
    action: str = Form(...),
    admin_notes: str | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await bulk_moderate(
            db, parse_int_list(suggestion_ids), action, await current_session(request, db), admin_notes=admin_notes
        )
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **result}
