"""SQLAlchemy models."""

from app.models.prediction import PredictionRecord
from app.models.profile import UserProfile
from app.models.session import UserSession
from app.models.user import User

__all__ = ["User", "UserSession", "UserProfile", "PredictionRecord"]
