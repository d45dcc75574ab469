"""Account registration, login and user administration."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.errors import AuthError, Conflict, NotFound, ValidationError
from storefront.models import ROLE_ADMIN, ROLE_USER, ROLES, User
from storefront.monitoring import auth_attempts_counter, auth_failures_counter, registrations_counter
from storefront.security import create_access_token, hash_password, verify_password
from storefront.services.common import like_pattern, paginate

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
PROFILE_FIELDS = ("name", "phone", "address")
ADMIN_EDITABLE_FIELDS = ("name", "email", "role", "phone", "address", "is_active")


class UserService:
    """Service for user accounts."""

    def register(
        self,
        db: Session,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        address: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a regular user account and issue a token for it.

        Raises:
            ValidationError: If the password is too short
            Conflict: If the email is already registered
        """
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        email = email.lower()
        if db.query(User).filter(User.email == email).first() is not None:
            raise Conflict("User already exists with this email")

        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=ROLE_USER,
            phone=phone,
            address=address,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict("User already exists with this email")
        db.refresh(user)

        registrations_counter.add(1)
        logger.info("User registered", extra={"user_id": user.id, "email": email})

        return {"token": create_access_token(user.id), "user": user}

    def login(self, db: Session, email: str, password: str, admin_only: bool = False) -> Dict[str, Any]:
        """
        Verify credentials and issue a token.

        Args:
            db: Database session
            email: Account email
            password: Plain-text password
            admin_only: Accept only active admin accounts

        Raises:
            AuthError: If the credentials are invalid or the account is inactive
        """
        login_type = "admin_login" if admin_only else "login"
        auth_attempts_counter.add(1, {"type": login_type})
        failure_message = "Invalid admin credentials" if admin_only else "Invalid credentials"

        query = db.query(User).filter(User.email == email.lower(), User.is_active.is_(True))
        if admin_only:
            query = query.filter(User.role == ROLE_ADMIN)
        user = query.first()

        if user is None:
            auth_failures_counter.add(1, {"reason": "unknown_user", "type": login_type})
            logger.warning("Login failed: Unknown or inactive account", extra={"email": email})
            raise AuthError(failure_message)

        if not verify_password(password, user.password_hash):
            auth_failures_counter.add(1, {"reason": "invalid_password", "type": login_type})
            logger.warning("Login failed: Invalid password", extra={"email": email})
            raise AuthError(failure_message)

        logger.info("User logged in successfully", extra={
            "user_id": user.id,
            "role": user.role,
            "type": login_type
        })
        return {"token": create_access_token(user.id), "user": user}

    def update_profile(self, db: Session, user: User, changes: Dict[str, Any]) -> User:
        """Update the caller's own name, phone, address or password."""
        password = changes.pop("password", None)
        if password is not None and len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        for field, value in changes.items():
            if field in PROFILE_FIELDS:
                setattr(user, field, value)
        if password is not None:
            user.password_hash = hash_password(password)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationError("Profile update violates a required field")
        db.refresh(user)
        return user

    def list_users(
        self,
        db: Session,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        role: Optional[str] = None
    ) -> Dict[str, Any]:
        query = db.query(User)
        if search:
            pattern = like_pattern(search)
            query = query.filter(or_(
                User.name.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\")
            ))
        if role:
            if role not in ROLES:
                raise ValidationError(f"Unknown role: {role}")
            query = query.filter(User.role == role)
        return paginate(query.order_by(User.created_at.desc(), User.id.desc()), page, limit)

    def get_user(self, db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def update_user(self, db: Session, user_id: int, changes: Dict[str, Any]) -> User:
        """
        Admin update of any account field except the password.

        Raises:
            NotFound: If the user does not exist
            ValidationError: If the role is unknown
            Conflict: If the new email belongs to another account
        """
        user = self.get_user(db, user_id)

        if "role" in changes and changes["role"] not in ROLES:
            raise ValidationError(f"Unknown role: {changes['role']}")
        if changes.get("email"):
            changes["email"] = changes["email"].lower()
            taken = db.query(User).filter(User.email == changes["email"], User.id != user_id).first()
            if taken is not None:
                raise Conflict("Email is already in use")

        for field, value in changes.items():
            if field in ADMIN_EDITABLE_FIELDS:
                setattr(user, field, value)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict("Duplicate field value entered")
        db.refresh(user)

        logger.info("User updated", extra={"user_id": user_id, "fields": sorted(changes)})
        return user

    def deactivate_user(self, db: Session, user_id: int) -> User:
        user = self.get_user(db, user_id)
        user.is_active = False
        db.commit()
        logger.info("User deactivated", extra={"user_id": user_id})
        return user

    def user_stats(self, db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.utcnow()
        total = db.query(User).count()
        active = db.query(User).filter(User.is_active.is_(True)).count()
        admins = db.query(User).filter(User.role == ROLE_ADMIN).count()
        recent = db.query(User).filter(User.created_at >= now - timedelta(days=30)).count()

        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "admin_users": admins,
            "regular_users": total - admins,
            "recent_registrations": recent,
        }
