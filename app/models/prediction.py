"""Prediction history model."""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String

from app.database import Base, utcnow


class PredictionRecord(Base):
    """Submitted features and the classification returned by the ML service."""

    __tablename__ = "prediction_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=True, index=True)
    age = Column(Float, nullable=False)
    glucose = Column(Float, nullable=False)
    blood_pressure = Column(Float, nullable=False)
    skin_thickness = Column(Float, nullable=True)
    insulin = Column(Float, nullable=True)
    bmi = Column(Float, nullable=False)
    diabetes_pedigree_function = Column(Float, nullable=True)
    pregnancies = Column(Integer, nullable=False, default=0)
    prediction_result = Column(Integer, nullable=False)
    probability = Column(Float, nullable=False)
    confidence = Column(Float, nullable=False)
    risk_level = Column(String(16), nullable=False)  # Low, Moderate, High
    label = Column(String(64), nullable=True)
    model_version = Column(String(32), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    predicted_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
