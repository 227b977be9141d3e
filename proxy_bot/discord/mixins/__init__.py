from .message_mixin import MessageMixin

__all__ = [
    "MessageMixin",
]
