# cre/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    database_url: str = Field("sqlite://", validation_alias="DATABASE_URL")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    safety_policy_version: str = Field("2.1", validation_alias="SAFETY_POLICY_VERSION")
    followup_max_next_questions: int = Field(
        3, validation_alias="FOLLOWUP_MAX_NEXT_QUESTIONS"
    )
    uc2_duration_weeks: int = Field(12, validation_alias="UC2_DURATION_WEEKS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
