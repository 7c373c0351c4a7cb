from .store import StateStore

__all__ = ["StateStore"]
