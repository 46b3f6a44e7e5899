from fastapi import APIRouter, Request
from pydantic import BaseModel
from ..services.auth import require_auth
from ..services import clubs as club_service
from ..services.stats import club_stats, stats_to_dict

router = APIRouter(prefix="/clubs", tags=["clubs"])


class ClubCreate(BaseModel):
    name: str
    description: str | None = None


class ClubUpdate(BaseModel):
    name: str | None = None
    description: str | None = None


@router.post("", status_code=201)
def create_club(data: ClubCreate, request: Request):
    uid = require_auth(request=request)
    cid = club_service.create_club(uid, data.name, data.description)
    return club_service.get_club_info(cid)


@router.get("")
def list_clubs(request: Request):
    uid = require_auth(request=request)
    return club_service.list_user_clubs(uid)


@router.get("/{club_id}")
def get_club(club_id: str, request: Request):
    require_auth(request=request)
    return club_service.get_club_info(club_id)


@router.put("/{club_id}")
def update_club(club_id: str, data: ClubUpdate, request: Request):
    """Update club name or description (manager only)."""
    uid = require_auth(request=request)
    return club_service.update_club_info(club_id, uid, name=data.name, description=data.description)


@router.post("/{club_id}/join")
def join_club(club_id: str, request: Request):
    uid = require_auth(request=request)
    club_service.join_club(club_id, uid)
    return {"message": "Joined club successfully"}


@router.post("/{club_id}/leave")
def leave_club(club_id: str, request: Request):
    uid = require_auth(request=request)
    club_service.leave_club(club_id, uid)
    return {"message": "Left club successfully"}


@router.post("/{club_id}/remove/{member_id}")
def remove_member(club_id: str, member_id: str, request: Request):
    uid = require_auth(request=request)
    club_service.remove_club_member(club_id, uid, member_id)
    return {"message": "Member removed successfully"}


@router.post("/{club_id}/transfer/{new_manager_id}")
def transfer_management(club_id: str, new_manager_id: str, request: Request):
    uid = require_auth(request=request)
    club_service.transfer_management(club_id, uid, new_manager_id)
    return {"message": "Club management transferred successfully"}


@router.get("/{club_id}/stats")
def get_club_stats(club_id: str, request: Request, date: str | None = None):
    require_auth(request=request)
    return stats_to_dict(club_stats(club_id, date))
