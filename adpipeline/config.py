"""
Environment-driven settings.

Values are read once, when `settings` is created at import time.
server/main.py loads the project's .env file (python-dotenv) before
importing anything that reads them.

    OPENROUTER_API_KEY          LLM gateway key (text blocks)
    OPENROUTER_BASE_URL         OpenAI-compatible endpoint
    REPLICATE_API_TOKEN         media generation (video / image / remove bg)
    REPLICATE_TIMEOUT           seconds before a prediction is abandoned
    ADPIPELINE_PUBLIC_DIR       directory served as the public web root
    ADPIPELINE_PUBLIC_BASE_URL  origin used to turn "/pipeline-output/..." into absolute URLs
    ADPIPELINE_PIPELINES_DIR    where saved pipeline snapshots are written
    ADPIPELINE_STRIP_THRESHOLD  inline data: payloads longer than this are not persisted
    FFMPEG_BINARY               ffmpeg executable
"""
from __future__ import annotations

import os

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PipelineSettings(BaseSettings):
    """Settings for the pipeline server and its block operations."""

    model_config = SettingsConfigDict(populate_by_name=True, env_ignore_empty=True, extra="ignore")

    # ==========================================================================
    # LLM gateway
    # ==========================================================================

    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_MAX_TOKENS: int = Field(1500, validation_alias="ADPIPELINE_LLM_MAX_TOKENS")

    # ==========================================================================
    # Replicate
    # ==========================================================================

    REPLICATE_API_TOKEN: str = ""
    # seconds a single prediction may take, polling included
    REPLICATE_TIMEOUT: float = 600.0

    # ==========================================================================
    # Files
    # ==========================================================================

    PUBLIC_DIR: str = Field(os.path.join(os.getcwd(), "public"), validation_alias="ADPIPELINE_PUBLIC_DIR")
    OUTPUT_SUBDIR: str = "pipeline-output"
    # defaults to PUBLIC_DIR/OUTPUT_SUBDIR
    OUTPUT_DIR: str = ""
    PUBLIC_BASE_URL: str = Field("http://localhost:3001", validation_alias="ADPIPELINE_PUBLIC_BASE_URL")

    PIPELINES_DIR: str = Field(os.path.join(os.getcwd(), "pipelines"), validation_alias="ADPIPELINE_PIPELINES_DIR")
    STRIP_THRESHOLD: int = Field(5000, validation_alias="ADPIPELINE_STRIP_THRESHOLD")

    FFMPEG_BINARY: str = "ffmpeg"

    # ==========================================================================
    # Server
    # ==========================================================================

    HOST: str = Field("0.0.0.0", validation_alias="ADPIPELINE_HOST")
    PORT: int = Field(3001, validation_alias="ADPIPELINE_PORT")
    LOG_LEVEL: str = Field("INFO", validation_alias="ADPIPELINE_LOG_LEVEL")

    @model_validator(mode="after")
    def _resolve_paths(self) -> 'PipelineSettings':
        self.PUBLIC_DIR = os.path.abspath(self.PUBLIC_DIR)
        self.PIPELINES_DIR = os.path.abspath(self.PIPELINES_DIR)
        if not self.OUTPUT_DIR:
            self.OUTPUT_DIR = os.path.join(self.PUBLIC_DIR, self.OUTPUT_SUBDIR)
        return self


settings = PipelineSettings()
