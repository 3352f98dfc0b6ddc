"""User health profile model."""

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String

from app.database import Base, utcnow


class UserProfile(Base):
    """Optional health profile, at most one per user."""

    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, unique=True, index=True)
    height_cm = Column(Float, nullable=True)
    weight_kg = Column(Float, nullable=True)
    blood_type = Column(String(8), nullable=True)
    medical_conditions = Column(JSON, nullable=True)
    medications = Column(JSON, nullable=True)
    allergies = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
