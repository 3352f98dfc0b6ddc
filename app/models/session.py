"""User session model."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String

from app.database import Base, utcnow


class UserSession(Base):
    """One issued bearer/refresh pair. Rows are deactivated, never deleted."""

    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    session_token = Column(String(1024), nullable=False, unique=True, index=True)
    refresh_token = Column(String(128), nullable=False, unique=True, index=True)
    device_info = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    refresh_expires_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    ended_reason = Column(String(32), nullable=True)  # logout, refreshed
    last_activity_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
