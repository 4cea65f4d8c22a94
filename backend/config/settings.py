from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
from typing import List, Optional, Union
import os


DEFAULT_CLASSIFIER_MODELS = ["gpt-4o-mini", "gpt-4o", "gpt-4.1-mini"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can come from:
    - docker-compose.yml environment section
    - .env file (for secrets like API keys)
    - System environment

    Variable names match docker-compose conventions:
    - POSTGRES_HOST, POSTGRES_PORT, etc. (for database)
    - REDIS_URL (for the settlement queue)
    - OPENAI_API_KEY, CLASSIFIER_MODELS (for photo verification)
    - STORAGE_URL, STORAGE_KEY, STORAGE_BUCKET (for photo storage)
    """

    # Environment
    environment: str = "development"

    # JWT - uses SECRET_KEY from .env or generates default
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # PostgreSQL (from docker-compose)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "kyro_user"
    postgres_password: str = "kyro_pass"
    postgres_db: str = "kyro"
    database_url: Optional[str] = None

    # Redis
    redis_url: str = "redis://localhost:6379"

    # Verification classifier (from .env)
    openai_api_key: str = ""
    # Tried in order; comma-separated in the environment
    classifier_models: Union[List[str], str] = DEFAULT_CLASSIFIER_MODELS
    classifier_temperature: float = 0.1
    classifier_max_tokens: int = 1024
    classifier_timeout_seconds: float = 60.0

    # Photo storage (Supabase-style storage REST API)
    storage_url: str = ""
    storage_key: str = ""
    storage_bucket: str = "pickup-photos"
    storage_timeout_seconds: float = 30.0

    # Reconciliation
    pending_stale_minutes: int = 30
    reconcile_interval_seconds: int = 60
    reconcile_batch_size: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars
        validate_default = True  # run the before-validators on defaults too

    @field_validator('jwt_secret_key', mode='before')
    @classmethod
    def get_jwt_secret(cls, v):
        """Use SECRET_KEY from env if JWT_SECRET_KEY not set"""
        if v and v != "dev-secret-key-change-in-production":
            return v
        # Fall back to SECRET_KEY (used in .env)
        return os.getenv('SECRET_KEY', v or 'dev-secret-key-change-in-production')

    @field_validator('classifier_models', mode='before')
    @classmethod
    def split_classifier_models(cls, v):
        """Accept 'model-a,model-b' from the environment"""
        if v is None:
            return list(DEFAULT_CLASSIFIER_MODELS)
        if isinstance(v, str):
            return [m.strip() for m in v.split(',') if m.strip()]
        return [str(m).strip() for m in v if str(m).strip()]

    @field_validator('database_url', mode='before')
    @classmethod
    def construct_database_url(cls, v, info):
        """Construct database URL from components if not explicitly set"""
        if v:
            return v

        data = info.data
        host = data.get('postgres_host', 'localhost')
        port = data.get('postgres_port', 5432)
        user = data.get('postgres_user', 'kyro_user')
        password = data.get('postgres_password', 'kyro_pass')
        db = data.get('postgres_db', 'kyro')

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
