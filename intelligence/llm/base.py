"""
Base LLM
Completion service abstraction
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum


class MessageRole(str, Enum):
    """Message role"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """Chat message"""
    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        """Serialise for the API call"""
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)


@dataclass
class LLMResponse:
    """Completion result"""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)  # prompt_tokens, completion_tokens, total_tokens
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = None


def build_messages(user_message: str, system_prompt: Optional[str] = None) -> List[Message]:
    messages = []
    if system_prompt:
        messages.append(Message.system(system_prompt))
    messages.append(Message.user(user_message))
    return messages


class BaseLLM(ABC):
    """
    Completion service base class

    Providers implement complete(); it is called from worker threads, so it
    must be blocking and thread-safe.
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        **kwargs,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.extra_config = kwargs

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider name"""

    @abstractmethod
    def complete(self, messages: List[Message], **kwargs) -> LLMResponse:
        """
        Generate a response.

        Args:
            messages: conversation
            **kwargs: temperature / max_tokens overrides

        Returns:
            LLMResponse

        Raises:
            LLMError: on any failure of the completion service
        """

    def chat(self, user_message: str, system_prompt: Optional[str] = None) -> str:
        """
        Single-turn completion.

        Args:
            user_message: prompt
            system_prompt: optional system prompt

        Returns:
            Assistant text
        """
        response = self.complete(build_messages(user_message, system_prompt))
        return response.content

    def close(self) -> None:
        """Release client resources (no-op by default)."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model}, provider={self.provider})"
