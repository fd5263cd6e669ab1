from typing import Any, Literal, Optional

from pydantic import BaseModel

# Request bodies accept missing fields so the services can answer with the
# site's own 400 messages instead of FastAPI's 422.

class RegisterIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None

class LoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

class RoleChangeIn(BaseModel):
    email: Any = None
    role: Any = None

class UserOut(BaseModel):
    id: int
    name: str
    email: str

class MeOut(UserOut):
    role: Literal["user", "admin"]

class LoginOut(BaseModel):
    user: UserOut
