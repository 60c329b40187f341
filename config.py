# -*- coding: utf-8 -*-

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = str(os.getenv(name, "")).strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = str(os.getenv(name, "")).strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    return str(os.getenv(name, default)).strip() or default


GEMINI_API_KEY = str(os.getenv("GEMINI_API_KEY", "")).strip()
GEMINI_API_URL = _env_str("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
GEMINI_TIMEOUT_S = max(1.0, _env_float("GEMINI_TIMEOUT_S", 120.0))

# Size of the dispatch pool; each in-flight job holds one worker for the
# duration of its outbound call.
GENERATION_MAX_WORKERS = max(1, _env_int("GENERATION_MAX_WORKERS", 32))

AVAILABLE_MODELS = (
    "gemini-2.5-flash-image",
    "gemini-2.5-flash-image-preview",
    "gemini-3-pro-image-preview",
    "gemini-2.0-flash-exp-image-generation",
)
DEFAULT_MODEL = "gemini-3-pro-image-preview"

ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
DEFAULT_ASPECT_RATIO = "1:1"

BATCH_MIN_ITEMS = 1
BATCH_MAX_ITEMS = 20

OUTPUT_EXTENSION = ".png"
DEFAULT_FILENAME_PREFIX = "image"
PROMPT_PREVIEW_CHARS = 50

LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()
