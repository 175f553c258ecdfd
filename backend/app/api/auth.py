"""
Authentication router for the RCFA API.
Provides endpoints for obtaining JWT tokens and listing assignable users.
"""

from datetime import timedelta
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, Security, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import get_settings
from backend.app.core.database import get_db
from backend.app.core.security import create_access_token, get_current_user, User, ROLE_SCOPES, RECORD_READ
from backend.app.schemas.records import UserResponse
from backend.app.services import auth_service

router = APIRouter()
settings = get_settings()

@router.post("/token")
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Standard OAuth2 /token endpoint to exchange email and password for a JWT.
    """
    user = await auth_service.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token_expires = timedelta(minutes=settings.access_token_expire_minutes)

    # Generate scopes based on role
    scopes = ROLE_SCOPES.get(user.role, [])

    access_token = create_access_token(
        data={"sub": user.id, "role": user.role, "scopes": scopes, "name": user.display_name},
        expires_delta=access_token_expires
    )

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "role": user.role,
        "scopes": scopes
    }


@router.get("/users", response_model=List[UserResponse])
async def list_assignable_users(
    db: AsyncSession = Depends(get_db),
    current_user: User = Security(get_current_user, scopes=[RECORD_READ]),
):
    """Active users that can own records and action items."""
    return await auth_service.list_active_users(db)
