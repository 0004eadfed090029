import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from . import config

log = logging.getLogger("bufe.auth")

router = APIRouter()


def _sign(body: str) -> str:
    return hmac.new(config.TOKEN_SECRET.encode(), body.encode(), hashlib.sha256).hexdigest()


def issue_token(username: str, role: str, ttl_minutes: Optional[int] = None) -> str:
    """
    Bearer token: base64url(JSON claims) + "." + hex HMAC-SHA256 signature.
    """
    ttl = config.TOKEN_TTL_MINUTES if ttl_minutes is None else ttl_minutes
    claims = {"sub": username, "role": role, "exp": int(time.time()) + ttl * 60}
    body = base64.urlsafe_b64encode(json.dumps(claims, separators=(",", ":")).encode()).decode().rstrip("=")
    return f"{body}.{_sign(body)}"


def verify_token(token: str) -> dict:
    try:
        body, sig = token.rsplit(".", 1)
    except ValueError:
        raise HTTPException(status_code=401, detail="invalid token")
    if not hmac.compare_digest(_sign(body), sig):
        raise HTTPException(status_code=401, detail="invalid token")
    try:
        claims = json.loads(base64.urlsafe_b64decode(body + "=" * (-len(body) % 4)))
    except (ValueError, TypeError):
        raise HTTPException(status_code=401, detail="invalid token")
    if int(claims.get("exp") or 0) < int(time.time()):
        raise HTTPException(status_code=401, detail="token expired")
    return claims


def require_token(authorization: Optional[str] = Header(None)) -> dict:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="authentication required")
    return verify_token(token.strip())


def require_role(*roles: str):
    def _dep(user: dict = Depends(require_token)) -> dict:
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="forbidden")
        return user

    return _dep


class LoginReq(BaseModel):
    username: str = ""
    password: str = ""


class LoginOut(BaseModel):
    token: str
    username: str
    role: str


@router.post("/login", response_model=LoginOut)
def login(req: LoginReq):
    known = config.USERS.get(req.username)
    expected = known[0] if known else "\x00" * max(len(req.password), 1)
    if not hmac.compare_digest(expected.encode(), req.password.encode()) or not known:
        log.warning("login rejected", extra={"username": req.username})
        raise HTTPException(status_code=401, detail="invalid credentials")
    role = known[1]
    return LoginOut(token=issue_token(req.username, role), username=req.username, role=role)
