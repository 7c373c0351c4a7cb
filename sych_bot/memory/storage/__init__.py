from .chats import StoreChatsMixin
from .document import DebouncedJsonDocument
from .instructions import StoreInstructionsMixin
from .profiles import StoreProfilesMixin
from .reminders import StoreRemindersMixin

__all__ = [
    "DebouncedJsonDocument",
    "StoreChatsMixin",
    "StoreInstructionsMixin",
    "StoreProfilesMixin",
    "StoreRemindersMixin",
]
