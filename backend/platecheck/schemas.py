"""
Pydantic schemas for request/response validation
"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

# ===== Common Schemas =====

class ApiError(BaseModel):
    error: str
    message: str
    status_code: Optional[int] = None

class HealthResponse(BaseModel):
    status: str
    service: str

# ===== Analysis Payload Schemas =====

class Nutrient(BaseModel):
    value: float
    unit: str

class Nutrients(BaseModel):
    carbohydrates: Nutrient
    protein: Nutrient
    fat: Nutrient
    sugars: Optional[Nutrient] = None
    sodium: Optional[Nutrient] = None

class FoodItem(BaseModel):
    foodName: str
    confidence: float = Field(ge=0.0, le=1.0)
    quantity: str
    calories: float
    nutrients: Nutrients

class AnalysisSummary(BaseModel):
    """Totals as computed by the analyzer. Not reconciled against items."""
    totalCalories: float
    totalCarbohydrates: Nutrient
    totalProtein: Nutrient
    totalFat: Nutrient

class AnalysisResult(BaseModel):
    items: List[FoodItem] = Field(default_factory=list)
    summary: AnalysisSummary

# ===== Job Schemas =====

class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

class SubmitResponse(BaseModel):
    jobId: str
    status: JobStatus

class AnalysisJobResponse(BaseModel):
    id: str
    status: JobStatus
    result: Optional[AnalysisResult] = None
    mealName: Optional[str] = None
    totalCalories: Optional[float] = None
    failureReason: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None

class AnalysisJobList(BaseModel):
    data: List[AnalysisJobResponse]

# ===== Analyzer Callback Schemas =====

class CallbackRequest(BaseModel):
    """
    Body the analyzer posts back. Older analyzer workflows send
    `analysisId`/`userId`/`analysisResult`, so those names are accepted too.
    """
    model_config = ConfigDict(extra="ignore")

    jobId: Optional[str] = Field(None, validation_alias=AliasChoices("jobId", "analysisId"))
    ownerId: Optional[str] = Field(None, validation_alias=AliasChoices("ownerId", "userId"))
    result: Optional[Any] = Field(None, validation_alias=AliasChoices("result", "analysisResult"))
    summary: Optional[Dict[str, Any]] = None
    mealName: Optional[str] = None
    success: Optional[bool] = None
    status: Optional[str] = None
    error: Optional[Any] = None

class CallbackAck(BaseModel):
    success: bool = True
    jobId: str
    status: JobStatus
    transitioned: bool

# ===== Account Schemas =====

class UsageResponse(BaseModel):
    plan: str
    usageCount: int
    limit: Optional[int] = None
    remaining: Optional[int] = None
