"""Chat-model integrations: HTTP client, retry policy, prompts, and conversations."""

from .conversation import Conversation, ConversationClient, OpenAIConversationClient
from .retry import ErrorCategory, RetryPolicy, classify_error

__all__ = [
    "Conversation",
    "ConversationClient",
    "ErrorCategory",
    "OpenAIConversationClient",
    "RetryPolicy",
    "classify_error",
]
