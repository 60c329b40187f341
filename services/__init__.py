"""External collaborators used by the job engine."""

from .gemini_client import GeminiImageClient  # noqa: F401

__all__ = ["GeminiImageClient"]
