# File: app/api/v1/endpoints/hosts.py

from fastapi import APIRouter, Depends
from supabase import Client

from app.api.deps import get_db
from app.models.schemas import HostGuide
from app.services import host_guide_service

router = APIRouter()


@router.get("/{host_id}/guide", response_model=HostGuide)
def host_guide(host_id: str, db: Client = Depends(get_db)):
    """
    Public guest guide: the host's name and their local recommendations.
    """
    return host_guide_service.get_host_guide(db, host_id)
