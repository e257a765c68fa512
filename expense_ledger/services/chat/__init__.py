"""Chat proxy services."""

from expense_ledger.services.chat.perplexity import ChatProxyError, PerplexityChatProxy

__all__ = [
    "ChatProxyError",
    "PerplexityChatProxy",
]
