"""
Security and Authentication for the RCFA API.

Implements OAuth2 with password flow and JWT tokens. The token subject is the
AppUser id; the role claim drives the scopes granted to the caller.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, SecurityScopes
from jose import JWTError, jwt
from pydantic import BaseModel

from backend.app.core.config import get_settings
from backend.app.core.logging import actor_id_ctx

settings = get_settings()

# Record lifecycle scopes
RECORD_READ = "record:read"
RECORD_WRITE = "record:write"
RECORD_ADMIN = "record:admin"

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="api/v1/auth/token",
    scopes={
        RECORD_READ: "Read failure investigation records, findings and audit trails",
        RECORD_WRITE: "Create records and drive them through the workflow",
        RECORD_ADMIN: "Reassign ownership, reopen closed records and delete records",
    },
)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Generate a signed JWT token.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


# Role definitions
class Role:
    ADMIN = "admin"
    USER = "user"


ROLE_SCOPES = {
    Role.ADMIN: [RECORD_READ, RECORD_WRITE, RECORD_ADMIN],
    Role.USER: [RECORD_READ, RECORD_WRITE],
}

class User(BaseModel):
    """The authenticated caller as seen by the lifecycle services."""
    id: str
    role: str
    scopes: List[str] = []
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class TokenData(BaseModel):
    user_id: Optional[str] = None
    role: Optional[str] = None
    scopes: List[str] = []


async def get_current_user(
    security_scopes: SecurityScopes,
    token: str = Depends(oauth2_scheme)
) -> User:
    """
    Validate JWT token and check required scopes based on Role-Based Access Control.
    """
    if security_scopes.scopes:
        authenticate_value = f'Bearer scope="{security_scopes.scope_str}"'
    else:
        authenticate_value = "Bearer"

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": authenticate_value},
    )

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm]
        )
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception

        role: str = payload.get("role", Role.USER)
        # Assign scopes based on role if not present in token
        token_scopes = payload.get("scopes", ROLE_SCOPES.get(role, []))

        token_data = TokenData(user_id=user_id, role=role, scopes=token_scopes)
    except JWTError:
        raise credentials_exception

    for scope in security_scopes.scopes:
        if scope not in token_data.scopes:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Not enough permissions. Required scope: {scope}",
                headers={"WWW-Authenticate": authenticate_value},
            )

    actor_id_ctx.set(user_id)
    return User(
        id=user_id,
        role=role,
        scopes=token_data.scopes,
        display_name=payload.get("name"),
    )
