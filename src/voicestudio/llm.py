"""Concrete implementations for LLM providers."""

import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .config import DEFAULT_CHAT_MODEL, GROQ_BASE_URL
from .models import ASSISTANT_ROLE, EMPTY_RESPONSE_FALLBACK, ChatMessage

TITLE_PROMPT = (
    "You are a helpful assistant. Generate a short, concise title (max 5 words) "
    "for the chat based on the user message provided. Do not use quotes or punctuation."
)


class LLM(ABC):
    """Abstract Base Class for all LLM providers."""

    model: Optional[str] = None

    @abstractmethod
    def generate_response(
        self, messages: List[Dict[str, Any]], model: Optional[str] = None, **kwargs: Any
    ) -> Any:
        """Generates a response from the LLM provider.

        This method should return the provider's native, rich response object
        directly from their SDK.

        Parameters
        ----------
        messages : List[Dict[str, Any]]
            A list of ``{"role", "content"}`` dictionaries.
        model : str, optional
            The specific model to use for the generation. Falls back to the
            provider's default model.
        **kwargs : Any
            Provider-specific parameters (e.g., temperature, max_tokens) to be
            passed directly to the SDK.

        Returns
        -------
        Any
            The provider's native, rich response object.
        """
        pass

    @abstractmethod
    def extract_content(self, response: Any) -> Optional[str]:
        """Extracts the text content from the provider's native response object."""
        pass

    def create_assistant_message(self, response: Any) -> ChatMessage:
        """Builds the assistant message to append to a session.

        Empty or malformed responses become a placeholder reply rather than
        an error, so a completed request always yields exactly one message.
        """
        try:
            content = self.extract_content(response)
        except (AttributeError, IndexError, KeyError, TypeError):
            content = None
        if not isinstance(content, str) or not content.strip():
            content = EMPTY_RESPONSE_FALLBACK
        return ChatMessage(role=ASSISTANT_ROLE, content=content)

    def generate_title(self, user_text: str, model: Optional[str] = None) -> str:
        """Asks the model for a short chat title based on the first user message."""
        response = self.generate_response(
            [
                {"role": "system", "content": TITLE_PROMPT},
                {"role": "user", "content": user_text},
            ],
            model=model,
            temperature=0.5,
            max_tokens=20,
        )
        return (self.extract_content(response) or "").strip()


class OpenAI(LLM):
    def __init__(
        self,
        default_model: str = "gpt-4o",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        from openai import OpenAI

        self.client = OpenAI(api_key=api_key, base_url=base_url)
        self.model = default_model

    def generate_response(
        self, messages: List[Dict[str, Any]], model=None, **kwargs: Any
    ) -> Any:
        return self.client.chat.completions.create(
            messages=messages, model=model or self.model, **kwargs
        )

    def extract_content(self, response: Any) -> Optional[str]:
        return response.choices[0].message.content


class Groq(OpenAI):
    """Groq's OpenAI-compatible chat completions endpoint."""

    def __init__(
        self, default_model: str = DEFAULT_CHAT_MODEL, api_key: Optional[str] = None
    ):
        super().__init__(
            default_model=default_model,
            api_key=api_key or os.getenv("GROQ_API_KEY"),
            base_url=GROQ_BASE_URL,
        )


class Echo(LLM):
    """Offline provider that repeats the last message back. For tests and demos."""

    def __init__(self, default_model: str = "echo-v1", delay: float = 0.0):
        self.model = default_model
        self.delay = delay

    def generate_response(self, messages, model=None, **kwargs):
        if self.delay:
            time.sleep(self.delay)
        user_prompt = messages[-1]["content"] if messages else "No message provided"
        content = f"**Echo LLM - static response for testing**\n\n_Your prompt:_\n\n{user_prompt}"

        return {
            "content": content,
            "raw_response": "Echo LLM - static response for testing",
        }

    def extract_content(self, response: Any) -> Optional[str]:
        if isinstance(response, dict) and "content" in response:
            return response["content"]
        return str(response)

    def generate_title(self, user_text: str, model: Optional[str] = None) -> str:
        return " ".join(user_text.split()[:5])
