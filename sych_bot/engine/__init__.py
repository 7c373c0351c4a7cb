from .engine import SychEngine
from .ports import AIGateway, ChatGateway

__all__ = ["AIGateway", "ChatGateway", "SychEngine"]
