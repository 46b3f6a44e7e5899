import datetime
from fastapi import APIRouter, Request
from pydantic import BaseModel, StrictInt
from ..services.auth import require_auth
from ..services import scores as score_service
from ..services.scores import score_to_dict

router = APIRouter(prefix="/scores", tags=["scores"])


class ScoreCreate(BaseModel):
    hole_scores: list[StrictInt]
    club_id: str | None = None
    notes: str | None = None
    date: datetime.datetime | None = None


class ScoreUpdate(BaseModel):
    hole_scores: list[StrictInt] | None = None
    notes: str | None = None


@router.post("", status_code=201)
def create_score(data: ScoreCreate, request: Request):
    uid = require_auth(request=request)
    score = score_service.record_score(
        uid,
        data.hole_scores,
        club_id=data.club_id,
        notes=data.notes,
        date=data.date,
    )
    return score_to_dict(score)


@router.get("")
def list_scores(request: Request):
    uid = require_auth(request=request)
    return [score_to_dict(s) for s in score_service.list_scores(uid)]


@router.get("/{score_id}")
def get_score(score_id: str, request: Request):
    uid = require_auth(request=request)
    return score_to_dict(score_service.get_score(score_id, uid), with_user=True)


@router.put("/{score_id}")
def update_score(score_id: str, data: ScoreUpdate, request: Request):
    uid = require_auth(request=request)
    score = score_service.update_score(score_id, uid, hole_scores=data.hole_scores, notes=data.notes)
    return score_to_dict(score)


@router.delete("/{score_id}")
def delete_score(score_id: str, request: Request):
    uid = require_auth(request=request)
    score_service.delete_score(score_id, uid)
    return {"message": "Score deleted successfully"}
