"""
Client implementations for external integrations.
"""

from .llm_client import CompletionClient, CompletionMessage, ToolCall

__all__ = ["CompletionClient", "CompletionMessage", "ToolCall"]
