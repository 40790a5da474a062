from .gemini import GeminiBackend, classify_failure

__all__ = ["GeminiBackend", "classify_failure"]
