import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException
from jose import JOSEError, jwt

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


@dataclass(frozen=True)
class Principal:
    user_id: int
    is_admin: bool = False


def decode_token(authorization: str) -> Principal:
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError(scheme)
        claims = jwt.decode(
            token,
            os.getenv("JWT_SECRET"),
            algorithms=[os.getenv("JWT_ALGORITHM", "HS256")],
        )
        return Principal(user_id=int(claims["sub"]), is_admin=bool(claims.get("is_admin", False)))
    except (ValueError, KeyError, TypeError, JOSEError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")


def optional_user(authorization: Optional[str] = Header(None)) -> Optional[Principal]:
    """The caller, or None for guest checkout when no token is sent."""
    if authorization is None:
        return None
    return decode_token(authorization)


def verify_token(authorization: str = Header(...)) -> Principal:
    return decode_token(authorization)


def require_admin(principal: Principal = Depends(verify_token)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin privileges required.")
    return principal
