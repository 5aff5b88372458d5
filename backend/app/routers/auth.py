import os

import jwt
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from ..config import rate_limits_disabled
from ..exceptions import http_problem
from ..schemas import IdentityOut


def get_jwt_secret() -> str:
  secret = os.getenv("JWT_SECRET")
  if not secret:
    raise RuntimeError("JWT_SECRET environment variable is required")
  if len(secret) < 32 or secret.lower() in {"secret", "changeme", "default"}:
    raise RuntimeError(
        "JWT_SECRET must be at least 32 characters and not a common default"
    )
  return secret


JWT_ALG = "HS256"


def _get_client_ip(request: Request) -> str:
  forwarded = request.headers.get("X-Forwarded-For")
  if forwarded:
    parts = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
    if parts:
      return parts[-1]
  real_ip = request.headers.get("X-Real-IP")
  if real_ip:
    return real_ip
  return request.client.host if request.client else ""


limiter = Limiter(key_func=_get_client_ip)
router = APIRouter(prefix="/auth", tags=["auth"])


def write_rate_limit() -> str:
  if rate_limits_disabled():
    return "1000/second"
  return "30/minute"


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
  detail = exc.detail if isinstance(exc.detail, str) else ""
  if detail:
    message = f"rate limit exceeded: {detail}"
  else:
    message = "rate limit exceeded: please wait before submitting another request."
  return JSONResponse(
      status_code=429,
      content={
          "detail": message,
          "code": "rate_limit_exceeded",
      },
  )


def _extract_bearer_token(authorization: str | None) -> str:
  if authorization and authorization.lower().startswith("bearer "):
    token = authorization.split(" ", 1)[1].strip()
    if token:
      return token
  raise http_problem(
      status_code=401,
      detail="missing token",
      code="auth_missing_token",
  )


def decode_identity_token(token: str) -> str:
  """Return the acting user id (``sub``) carried by a signed identity token."""
  audience = os.getenv("JWT_AUDIENCE") or None
  try:
    payload = jwt.decode(
        token,
        get_jwt_secret(),
        algorithms=[JWT_ALG],
        audience=audience,
        options={"verify_aud": audience is not None},
    )
  except jwt.ExpiredSignatureError:
    raise http_problem(
        status_code=401,
        detail="token expired",
        code="auth_token_expired",
    )
  except jwt.PyJWTError:
    raise http_problem(
        status_code=401,
        detail="invalid token",
        code="auth_invalid_token",
    )
  uid = payload.get("sub")
  if not isinstance(uid, str) or not uid.strip():
    raise http_problem(
        status_code=401,
        detail="token has no subject",
        code="auth_invalid_token",
    )
  return uid


async def get_current_user_id(authorization: str | None = Header(None)) -> str:
  return decode_identity_token(_extract_bearer_token(authorization))


@router.get("/me", response_model=IdentityOut)
async def read_me(current_user_id: str = Depends(get_current_user_id)):
  return IdentityOut(id=current_user_id)
