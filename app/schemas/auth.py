from pydantic import BaseModel


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthUser(BaseModel):
    id: str
    fullName: str
    email: str
    kind: str
    role: str | None = None
    permissions: dict[str, bool] = {}


class AuthResponse(BaseModel):
    token: str
    user: AuthUser
