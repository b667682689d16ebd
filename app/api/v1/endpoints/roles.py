# File: app/api/v1/endpoints/roles.py

from fastapi import APIRouter, Depends

from app.api.deps import get_session
from app.auth.session_context import SessionContext
from app.models.schemas import RoleAssignmentRequest, RoleAssignmentResponse

router = APIRouter()


@router.post("/assign", response_model=RoleAssignmentResponse)
def assign_role(
    request: RoleAssignmentRequest,
    session: SessionContext = Depends(get_session),
):
    """
    Sets the caller's single active role (host, vendor or user).
    """
    role = session.set_role(request.role)
    return RoleAssignmentResponse(role=role)


@router.get("/me")
def my_role(session: SessionContext = Depends(get_session)):
    return {"user_id": session.user.id, "role": session.role}
