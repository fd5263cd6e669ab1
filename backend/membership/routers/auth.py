# membership/routers/auth.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from membership.config import get_settings
from membership.core.security import (
    clear_session_cookie,
    get_current_user,
    read_session_token,
    set_session_cookie,
)
from membership.db.session import get_db
from membership.models.user import User
from membership.schemas.auth import LoginIn, LoginOut, MeOut, RegisterIn, UserOut
from membership.schemas.common import ok
from membership.services import accounts
from membership.services.mailer import Mailer, get_mailer

router = APIRouter(prefix="/api", tags=["auth"])

MSG_REGISTERED = "仮登録が完了しました。確認メールをご確認ください。"


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterIn,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    accounts.register(
        db,
        mailer,
        name=body.name,
        email=body.email,
        phone=body.phone,
        password=body.password,
    )
    return ok(data={"message": MSG_REGISTERED}, status_code=status.HTTP_201_CREATED)


@router.get("/verify-email")
def verify_email(token: Optional[str] = None, db: Session = Depends(get_db)):
    accounts.verify_email(db, token)
    return RedirectResponse(get_settings().VERIFY_SUCCESS_PATH, status_code=status.HTTP_303_SEE_OTHER)


# Older verification links point here.
router.add_api_route("/verify", verify_email, methods=["GET"], include_in_schema=False)


@router.post("/login")
def login(body: LoginIn, db: Session = Depends(get_db)):
    result = accounts.login(db, email=body.email, password=body.password)
    user = result.user
    payload = LoginOut(user=UserOut(id=user.id, name=user.name, email=user.email))
    response = ok(data=payload.model_dump())
    set_session_cookie(response, result.session_token)
    return response


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(request: Request, db: Session = Depends(get_db)):
    accounts.logout(db, read_session_token(request))
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_session_cookie(response)
    return response


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return ok(data=MeOut(id=user.id, name=user.name, email=user.email, role=user.role).model_dump())
