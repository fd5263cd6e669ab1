from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from membership.core.security import read_session_token, set_session_cookie
from membership.db.session import get_db
from membership.schemas.auth import RoleChangeIn
from membership.services.roles import change_role

router = APIRouter(prefix="/api/admin", tags=["admin"])

@router.patch("/users/role", status_code=status.HTTP_204_NO_CONTENT)
def update_user_role(body: RoleChangeIn, request: Request, db: Session = Depends(get_db)):
    result = change_role(
        db,
        session_token=read_session_token(request),
        email=body.email,
        role=body.role,
    )
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    # re-issue so the browser's cookie lifetime matches the slid expiry
    set_session_cookie(response, result.session_token)
    return response
