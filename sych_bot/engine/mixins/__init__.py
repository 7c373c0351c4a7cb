
from .command_mixin import CommandMixin
from .feature_mixin import FeatureMixin
from .reply_mixin import ReplyMixin
from .security_mixin import SecurityMixin
from .workers_mixin import WorkersMixin

__all__ = [
    "CommandMixin",
    "FeatureMixin",
    "ReplyMixin",
    "SecurityMixin",
    "WorkersMixin",
]
