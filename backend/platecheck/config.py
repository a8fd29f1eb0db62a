from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/dbname"

    AWS_ENDPOINT_URL: str
    AWS_ACCESS_KEY_ID: str
    AWS_SECRET_ACCESS_KEY: str
    AWS_REGION_NAME: str = "ru-1"
    S3_BUCKET_NAME: str

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    ANALYZER_WEBHOOK_URL: str = "http://analyzer:5678/webhook/meal-analysis"
    ANALYZER_CALLBACK_SECRET: str = "super-secret-key"
    ANALYZER_SOURCE: str = "camera-app"
    DISPATCH_TIMEOUT_SECONDS: float = 30.0
    DISPATCH_MAX_RETRIES: int = 0
    DISPATCH_RETRY_DELAY_SECONDS: int = 10
    DISPATCH_FAILURE_MARKS_JOB_FAILED: bool = False

    FREE_PLAN_USAGE_LIMIT: int = 5
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024

    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    class Config:
        env_file = ".env"

settings = Settings()
