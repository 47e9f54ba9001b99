from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from partsrunner.config import Settings, get_settings


def verify_token(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings)
) -> dict:
    """Check a bearer token issued by the hosted identity provider."""
    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer":
            raise ValueError("not a bearer token")
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience="authenticated"
        )
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
