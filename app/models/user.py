"""User model."""

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String

from app.database import Base, utcnow

USER_STATUS_ACTIVE = "active"


class User(Base):
    """Application user and credential-verification material."""

    __tablename__ = "user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(256), unique=True, nullable=False, index=True)
    password_hash = Column(String(256), nullable=False)
    first_name = Column(String(64), nullable=False)
    last_name = Column(String(64), nullable=False)
    phone = Column(String(32), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(16), nullable=True)  # male, female, other
    email_verified = Column(Boolean, nullable=False, default=False)
    status = Column(String(32), nullable=False, default=USER_STATUS_ACTIVE)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    password_reset_token = Column(String(256), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == USER_STATUS_ACTIVE
