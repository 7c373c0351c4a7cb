
from .ai_gateway import GeminiAIGateway
from .gemini_client import GeminiClient

__all__ = ["GeminiAIGateway", "GeminiClient"]
