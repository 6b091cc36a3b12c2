"""Configuration for the revenue advisor API."""

import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_TIMEOUT = 60.0  # seconds
LOG_FORMAT = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'


class Settings(BaseModel):
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    request_timeout: float = DEFAULT_TIMEOUT
    schema_variant: str = "full"
    allowed_origins: List[str] = ["*"]
    log_level: str = "INFO"


def load_settings() -> Settings:
    """
    Build Settings from the environment (and a .env file if present).
    """
    load_dotenv()

    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key or "your_gemini_api_key" in api_key:
        api_key = None

    origins = os.environ.get("ALLOWED_ORIGINS", "*").split(",")

    return Settings(
        gemini_api_key=api_key,
        gemini_model=os.environ.get("GEMINI_MODEL", DEFAULT_MODEL),
        request_timeout=float(os.environ.get("GEMINI_TIMEOUT", DEFAULT_TIMEOUT)),
        schema_variant=os.environ.get("ADVISOR_SCHEMA_VARIANT", "full").lower(),
        allowed_origins=[o.strip() for o in origins if o.strip()],
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("revenue_advisor")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
