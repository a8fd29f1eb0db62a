from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, DateTime, Float, Integer, func, JSON
Base = declarative_base()

JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_COMPLETE = "complete"
JOB_STATUS_FAILED = "failed"

PLAN_FREE = "free"
PLAN_PREMIUM = "premium"


class AnalysisJob(Base):
    __tablename__ = "analysis_jobs"
    id = Column(String, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=JOB_STATUS_PROCESSING)
    image_uri = Column(String, nullable=True)
    result = Column(JSON, nullable=True)
    meal_name = Column(String, nullable=True)
    # copied from result.summary so list views don't have to parse the JSON
    total_calories = Column(Float, nullable=True)
    total_carbohydrates = Column(Float, nullable=True)
    total_protein = Column(Float, nullable=True)
    total_fat = Column(Float, nullable=True)
    failure_reason = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)


class UserProfile(Base):
    __tablename__ = "profiles"
    id = Column(String, primary_key=True, index=True)
    plan = Column(String, nullable=False, default=PLAN_FREE)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
