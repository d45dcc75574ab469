"""Authentication API router."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.auth import get_current_user
from storefront.database import get_db
from storefront.dependencies import get_user_service
from storefront.models import User
from storefront.schemas import AuthResponse, LoginRequest, ProfileUpdate, RegisterRequest, UserEnvelope
from storefront.services.user_service import UserService

router = APIRouter(prefix="/api/auth", tags=["authentication"])


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Register a regular user account and return a bearer token."""
    result = user_service.register(db, **request.model_dump())
    return {"message": "User registered successfully", **result}


@router.post("/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Authenticate with email and password and return a bearer token."""
    result = user_service.login(db, request.email, request.password)
    return {"message": "Login successful", **result}


@router.get("/profile", response_model=UserEnvelope)
def get_profile(user: User = Depends(get_current_user)):
    """Get the authenticated user's profile."""
    return {"user": user}


@router.put("/profile", response_model=UserEnvelope)
def update_profile(
    request: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
):
    """Update the authenticated user's profile."""
    updated = user_service.update_profile(db, user, request.model_dump(exclude_unset=True))
    return {"message": "Profile updated successfully", "user": updated}
