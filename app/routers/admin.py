"""Маршруты администратора.

Вход в /admin/* сначала проверяет middleware в app.main по cookie, затем
require_admin сверяет права с текущей записью пользователя.
"""

from fastapi import APIRouter, Depends, Form, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.session import SESSION_COOKIE
from app.db.session import get_db
from app.routers.deps import error_response, require_admin, set_session_cookie
from app.routers.payloads import round_payload, tournament_payload, user_payload, vote_payload
from app.services.admin import delete_user, export_tournament, get_dashboard, list_users, set_user_admin
from app.services.advancement import (
    advance_to_next_round,
    finalize_matchup,
    force_advance_round,
    lock_round,
    override_matchup_winner,
    reset_tournament_bracket,
)
from app.services.errors import ServiceError
from app.services.voting import (
    cast_tie_breaker_vote,
    get_matchup_vote_analysis,
    get_tie_breaking_opportunities,
    remove_tie_breaker_vote,
)

auth_router = APIRouter(prefix="/admin")
router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@auth_router.post("/login")
async def admin_login(admin_key: str = Form(...)):
    if admin_key != settings.admin_key:
        return JSONResponse({"ok": False, "error": "Invalid admin key"}, status_code=403)
    return set_session_cookie(JSONResponse({"ok": True}), None, is_admin=True)


@auth_router.get("/logout")
@auth_router.post("/logout")
async def admin_logout():
    response = JSONResponse({"ok": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("")
async def admin_dashboard(db: AsyncSession = Depends(get_db)):
    return {"ok": True, **await get_dashboard(db)}


@router.get("/users")
async def admin_users(search: str | None = Query(default=None), db: AsyncSession = Depends(get_db)):
    users = await list_users(db, search=search)
    return {"ok": True, "users": [user_payload(user) for user in users]}


@router.post("/users/{user_id}/admin")
async def admin_users_set_admin(user_id: int, is_admin: bool = Form(...), db: AsyncSession = Depends(get_db)):
    try:
        user = await set_user_admin(db, user_id, is_admin)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "user": user_payload(user)}


@router.post("/users/{user_id}/delete")
async def admin_users_delete(user_id: int, db: AsyncSession = Depends(get_db)):
    try:
        await delete_user(db, user_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True}


@router.post("/tournaments/{tournament_id}/force-advance")
async def admin_force_advance(tournament_id: int, db: AsyncSession = Depends(get_db)):
    try:
        result = await force_advance_round(db, tournament_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **result}


@router.post("/tournaments/{tournament_id}/advance")
async def admin_advance(tournament_id: int, db: AsyncSession = Depends(get_db)):
    try:
        result = await advance_to_next_round(db, tournament_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **result}


@router.post("/tournaments/{tournament_id}/reset")
async def admin_reset(tournament_id: int, db: AsyncSession = Depends(get_db)):
    try:
        tournament = await reset_tournament_bracket(db, tournament_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "tournament": tournament_payload(tournament)}


@router.get("/tournaments/{tournament_id}/tie-breaks")
async def admin_tie_breaks(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return {"ok": True, "matchups": await get_tie_breaking_opportunities(db, tournament_id)}


@router.get("/tournaments/{tournament_id}/export")
async def admin_export(tournament_id: int, db: AsyncSession = Depends(get_db)):
    try:
        data = await export_tournament(db, tournament_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **data}


@router.post("/rounds/{round_id}/lock")
async def admin_round_lock(round_id: int, locked: bool = Form(default=True), db: AsyncSession = Depends(get_db)):
    try:
        round_ = await lock_round(db, round_id, locked=locked)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "round": round_payload(round_)}


@router.post("/matchups/{matchup_id}/finalize")
async def admin_matchup_finalize(matchup_id: int, db: AsyncSession = Depends(get_db)):
    try:
        matchup = await finalize_matchup(db, matchup_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "matchup_id": matchup.id, "winner_id": matchup.winner_id}


@router.post("/matchups/{matchup_id}/override")
async def admin_matchup_override(matchup_id: int, winner_id: int = Form(...), db: AsyncSession = Depends(get_db)):
    try:
        matchup = await override_matchup_winner(db, matchup_id, winner_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "matchup_id": matchup.id, "winner_id": matchup.winner_id}


@router.post("/matchups/{matchup_id}/tie-breaker")
async def admin_tie_breaker(
    matchup_id: int,
    contestant_id: int = Form(...),
    weight: int = Form(default=1),
    db: AsyncSession = Depends(get_db),
):
    try:
        vote = await cast_tie_breaker_vote(db, matchup_id, contestant_id, weight=weight)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "vote": vote_payload(vote)}


@router.post("/matchups/{matchup_id}/tie-breaker/delete")
async def admin_tie_breaker_delete(matchup_id: int, db: AsyncSession = Depends(get_db)):
    try:
        removed = await remove_tie_breaker_vote(db, matchup_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, "removed": removed}


@router.get("/matchups/{matchup_id}/analysis")
async def admin_matchup_analysis(matchup_id: int, db: AsyncSession = Depends(get_db)):
    try:
        analysis = await get_matchup_vote_analysis(db, matchup_id)
    except ServiceError as exc:
        return error_response(exc)
    return {"ok": True, **analysis}
