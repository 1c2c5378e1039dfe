from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Clinic Prescription Safety Engine"
    API_V1_STR: str = "/api/v1"

    # External collaborators
    INTERACTION_API_URL: Optional[str] = None
    INTERACTION_API_KEY: Optional[str] = None
    CATALOG_API_URL: Optional[str] = None
    PATIENT_API_URL: Optional[str] = None
    PRESCRIPTION_API_URL: Optional[str] = None
    SERVICE_API_KEY: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: float = 10.0

    @field_validator(
        "INTERACTION_API_URL", "CATALOG_API_URL", "PATIENT_API_URL", "PRESCRIPTION_API_URL",
        mode="before",
    )
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str):
            v = v.strip().rstrip("/")
            return v or None
        return v

    # Debounce windows
    INTERACTION_DEBOUNCE_MS: int = 250
    MEDICINE_SEARCH_DEBOUNCE_MS: int = 300
    MEDICINE_SEARCH_MIN_LENGTH: int = 2
    MEDICINE_SEARCH_LIMIT: int = 10

    # Redis
    REDIS_URL: Optional[str] = None
    CATALOG_CACHE_TTL_SECONDS: int = 300

    # Prescribing defaults
    DEFAULT_DURATION_DAYS: int = Field(default=7, ge=1)

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra='ignore')

settings = Settings()
