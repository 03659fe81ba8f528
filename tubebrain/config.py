"""
Comment Brain Service Configuration
"""

from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ===== Service =====
    SERVICE_NAME: str = Field(default="tubebrain", env="SERVICE_NAME")  # type: ignore
    SERVICE_VERSION: str = Field(default="1.0.0", env="SERVICE_VERSION")  # type: ignore
    HOST: str = Field(default="0.0.0.0", env="HOST")  # type: ignore
    PORT: int = Field(default=8000, env="PORT")  # type: ignore
    LOG_LEVEL: str = Field(default="info", env="LOG_LEVEL")  # type: ignore
    DEBUG: bool = Field(default=False, env="DEBUG")  # type: ignore

    # ===== CORS =====
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"], env="CORS_ORIGINS"  # type: ignore
    )

    # ===== YouTube =====
    YOUTUBE_API_KEY: str = Field(default="", env="YOUTUBE_API_KEY")  # type: ignore
    YOUTUBE_API_BASE: str = Field(default="https://www.googleapis.com/youtube/v3", env="YOUTUBE_API_BASE")  # type: ignore
    YOUTUBE_REGION_CODE: str = Field(default="US", env="YOUTUBE_REGION_CODE")  # type: ignore
    YOUTUBE_TRENDING_LIMIT: int = Field(default=50, env="YOUTUBE_TRENDING_LIMIT")  # type: ignore

    # ===== Quota (1 unit per video listing, 3 per comment page) =====
    QUOTA_COST_PER_FETCH: int = Field(default=4, env="QUOTA_COST_PER_FETCH")  # type: ignore
    MAX_QUOTA_PER_DAY: int = Field(default=10000, env="MAX_QUOTA_PER_DAY")  # type: ignore
    COMMENTS_PER_BATCH: int = Field(default=100, env="COMMENTS_PER_BATCH")  # type: ignore

    # ===== Harvest =====
    MAX_COMMENTS_PER_VIDEO: int = Field(default=100, env="MAX_COMMENTS_PER_VIDEO")  # type: ignore
    MAX_VIDEOS_PER_UPDATE: int = Field(default=5, ge=0, env="MAX_VIDEOS_PER_UPDATE")  # type: ignore
    FETCH_TIMEOUT_SECONDS: float = Field(default=30.0, env="FETCH_TIMEOUT_SECONDS")  # type: ignore
    FETCH_FAILURE_POLICY: Literal["skip", "abort"] = Field(default="skip", env="FETCH_FAILURE_POLICY")  # type: ignore
    HARVEST_ENABLED: bool = Field(default=True, env="HARVEST_ENABLED")  # type: ignore
    HARVEST_INTERVAL_SECONDS: int = Field(default=3600, env="HARVEST_INTERVAL_SECONDS")  # type: ignore
    HARVEST_ON_STARTUP: bool = Field(default=True, env="HARVEST_ON_STARTUP")  # type: ignore

    # ===== Markov =====
    CHAIN_LENGTH: int = Field(default=2, ge=1, env="CHAIN_LENGTH")  # type: ignore
    MAX_GENERATION_STEPS: int = Field(default=200, ge=1, env="MAX_GENERATION_STEPS")  # type: ignore

    # ===== Storage =====
    STORAGE_LAYOUT: Literal["split", "legacy"] = Field(default="split", env="STORAGE_LAYOUT")  # type: ignore
    MAP_PATH: str = Field(default="data/markov-map.json", env="MAP_PATH")  # type: ignore
    HARVESTED_IDS_PATH: str = Field(default="data/harvested-ids.json", env="HARVESTED_IDS_PATH")  # type: ignore
    CORPUS_LOG_PATH: str = Field(default="data/corpus.jsonl", env="CORPUS_LOG_PATH")  # type: ignore
    LEGACY_STORE_PATH: Optional[str] = Field(default="data/markov.json", env="LEGACY_STORE_PATH")  # type: ignore

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def quota_ceiling(self) -> int:
        """Comments fetchable per day under the quota cost model"""
        return int(self.MAX_QUOTA_PER_DAY / self.QUOTA_COST_PER_FETCH * self.COMMENTS_PER_BATCH)


settings = Settings()
