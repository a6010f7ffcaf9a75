import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .config import SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

VALID_ROLES = {"admin", "company_owner", "employee", "customer"}


def verify_supabase_token(token: str) -> dict:
    """Verify a Supabase access token (HS256, signed with the project JWT secret)"""
    if not SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        ) from e
    except JWTError as e:
        logger.warning(f"⚠️ Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid token") from e

    if not payload.get("sub"):
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    return payload


def role_from_claims(claims: dict) -> Optional[str]:
    """Role from app_metadata only. user_metadata is editable by the user themselves"""
    role = (claims.get("app_metadata") or {}).get("role")
    if role in VALID_ROLES:
        return role
    if (claims.get("user_metadata") or {}).get("role"):
        logger.warning(f"⚠️ Ignoring role in user_metadata for user {claims.get('sub')}")
    return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the Supabase bearer token"""

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    claims = verify_supabase_token(credentials.credentials)
    user_id = claims["sub"]

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        email = claims.get("email")
        if not email:
            raise HTTPException(status_code=401, detail="Invalid token claims")
        metadata = claims.get("user_metadata") or {}
        user = User(
            id=user_id,
            email=email,
            first_name=metadata.get("first_name"),
            last_name=metadata.get("last_name"),
            role=role_from_claims(claims) or "customer",
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"✅ Created local user record for {email} ({user.role})")
    else:
        role = role_from_claims(claims)
        if role and role != user.role:
            logger.info(f"🔄 Role of user {user.id} changed from {user.role} to {role}")
            user.role = role
            db.commit()

    return user
