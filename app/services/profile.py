"""Profile service for user contact details and health profile."""

import logging
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from app.models.profile import UserProfile
from app.models.user import User
from app.services.validation import check_gender, check_name, check_phone

logger = logging.getLogger("diabeacheck")

HEALTH_FIELDS = ("height_cm", "weight_kg", "blood_type", "medical_conditions", "medications", "allergies")


class ProfileService:
    """Handles user profile retrieval and updates. Email is never changed here."""

    def get_profile(self, db: Session, user_id: int) -> UserProfile | None:
        return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()

    def validate_update(
        self,
        first_name: str | None = None,
        last_name: str | None = None,
        phone: str | None = None,
        gender: str | None = None,
    ) -> list[dict[str, str]]:
        """Validate only the fields that are being changed."""
        errors = []
        if first_name is not None:
            errors += check_name(first_name, "firstName", "First name")
        if last_name is not None:
            errors += check_name(last_name, "lastName", "Last name")
        errors += check_phone(phone)
        errors += check_gender(gender)
        return errors

    def update_user(
        self,
        db: Session,
        user: User,
        first_name: str | None = None,
        last_name: str | None = None,
        phone: str | None = None,
        date_of_birth: date | None = None,
        gender: str | None = None,
    ) -> User:
        """Apply the provided basic fields; omitted fields keep their value."""
        if first_name is not None:
            user.first_name = first_name.strip()
        if last_name is not None:
            user.last_name = last_name.strip()
        if phone is not None:
            user.phone = phone.strip()
        if date_of_birth is not None:
            user.date_of_birth = date_of_birth
        if gender is not None:
            user.gender = gender
        db.commit()
        db.refresh(user)
        return user

    def update_health_profile(self, db: Session, user_id: int, data: dict[str, Any]) -> UserProfile | None:
        """Create or update the health profile with any non-null health fields."""
        values = {k: v for k, v in data.items() if k in HEALTH_FIELDS and v is not None}
        if not values:
            return self.get_profile(db, user_id)

        profile = self.get_profile(db, user_id)
        if profile is None:
            profile = UserProfile(user_id=user_id)
            db.add(profile)
        for key, value in values.items():
            setattr(profile, key, value)
        db.commit()
        db.refresh(profile)
        logger.info("User profile updated: user_id=%s", user_id)
        return profile
