# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""LLM client using LiteLLM for multi-provider support.

This module is the single "generate" capability used by the pipeline
nodes: prompt (plus optional system prompt and history) in, text out, or
an ``LLMError``. Multimodal requests (image parts) go through
``complete_with_messages`` and voice memos through ``transcribe``.

Example:
    >>> from src.core.intelligence.llm import LLMClient
    >>> client = LLMClient(model="gpt-4o")
    >>> response = await client.complete("Explain fermentation to a 9 year old")
    >>> print(response.content)
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import litellm
from litellm import acompletion, atranscription

from src.core.config.settings import LLMSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from an LLM completion.

    Attributes:
        content: The generated text content.
        model: The model that generated the response.
        tokens_input: Number of input tokens used.
        tokens_output: Number of output tokens generated.
        finish_reason: Why generation stopped (stop, length, etc.).
        raw_response: Original response object from LiteLLM.
    """

    content: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    finish_reason: str = "stop"
    raw_response: Optional[object] = field(default=None, repr=False)

    @property
    def total_tokens(self) -> int:
        """Get total tokens used (input + output)."""
        return self.tokens_input + self.tokens_output


@dataclass
class Transcription:
    """Result of an audio transcription.

    Attributes:
        text: Transcribed text.
        language: Detected language, when reported.
        duration: Audio duration in seconds, when reported.
    """

    text: str
    language: Optional[str] = None
    duration: Optional[float] = None


class LLMError(Exception):
    """Exception raised when LLM operation fails.

    Attributes:
        message: Error description.
        model: Model that caused the error.
        error_code: Error code if available.
        original_error: Original exception if any.
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        error_code: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.model = model
        self.error_code = error_code
        self.original_error = original_error
        super().__init__(self.message)


@dataclass
class Message:
    """A message in a conversation.

    Content is either plain text or a list of OpenAI-style content parts
    (``{"type": "text", ...}``, ``{"type": "image_url", ...}``).

    Attributes:
        role: Message role (system, user, assistant).
        content: Message content.
    """

    role: str
    content: str | list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary format for LiteLLM."""
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_history(cls, history: list[dict[str, str]]) -> list["Message"]:
        """Build messages from ``{"role", "content"}`` history dicts.

        Unknown roles are sent as ``user``.
        """
        messages = []
        for item in history:
            role = item.get("role", "user")
            if role not in ("system", "user", "assistant"):
                role = "user"
            messages.append(cls(role=role, content=item.get("content", "")))
        return messages


class LLMClient:
    """Client for LLM operations via LiteLLM.

    Attributes:
        model: Default model to use for completions.
        timeout: Request timeout in seconds.
        max_retries: Retry attempts delegated to LiteLLM.

    Example:
        >>> client = LLMClient()
        >>> response = await client.complete(
        ...     prompt="Suggest a garden project",
        ...     model="gpt-4o",
        ...     temperature=0.7,
        ... )
    """

    def __init__(
        self,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        llm_settings: Optional[LLMSettings] = None,
    ):
        """Initialize the LLM client.

        Args:
            model: Default model in LiteLLM format.
            timeout: Request timeout in seconds. Falls back to settings.
            max_retries: Maximum retry attempts. Falls back to settings.
            llm_settings: LLM configuration. Uses get_settings() if None.
        """
        self._settings = llm_settings or get_settings().llm
        self._model = model or "gpt-4o"
        self._timeout = timeout or self._settings.request_timeout
        self._max_retries = max_retries if max_retries is not None else self._settings.max_retries

        litellm.drop_params = True

        logger.info(
            "LLMClient initialized with model=%s, timeout=%.1fs, max_retries=%d",
            self._model,
            self._timeout,
            self._max_retries,
        )

    @property
    def model(self) -> str:
        """Default model identifier."""
        return self._model

    def _get_provider_params(self, model: str) -> dict[str, Any]:
        """Provider endpoint and key passed directly to LiteLLM."""
        if model.startswith(("ollama/", "ollama_chat/")):
            return {"api_base": self._settings.ollama_base_url}
        api_key = self._settings.api_key_for(model)
        return {"api_key": api_key} if api_key else {}

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        messages: Optional[list[Message]] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> LLMResponse:
        """Generate a completion for the given prompt.

        Args:
            prompt: User prompt text.
            model: Override default model for this request.
            system_prompt: Optional system prompt to set context.
            messages: Previous conversation messages (if multi-turn).
            temperature: Sampling temperature (0-2).
            max_tokens: Maximum tokens to generate.
            **kwargs: Additional LiteLLM parameters.

        Returns:
            LLMResponse with generated content and metadata.

        Raises:
            LLMError: If generation fails after retries.
            ValueError: If prompt is empty.
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")

        chat_messages: list[Message] = []
        if system_prompt:
            chat_messages.append(Message(role="system", content=system_prompt))
        if messages:
            chat_messages.extend(messages)
        chat_messages.append(Message(role="user", content=prompt))

        return await self.complete_with_messages(
            chat_messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )

    async def complete_with_messages(
        self,
        messages: list[Message],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> LLMResponse:
        """Generate a completion from a full message list.

        Supports multimodal content parts for vision-capable models.

        Args:
            messages: Conversation messages, system prompt included.
            model: Override default model for this request.
            temperature: Sampling temperature (0-2).
            max_tokens: Maximum tokens to generate.
            **kwargs: Additional LiteLLM parameters.

        Returns:
            LLMResponse with generated content.

        Raises:
            LLMError: If generation fails.
            ValueError: If messages is empty.
        """
        if not messages:
            raise ValueError("Messages cannot be empty")

        use_model = model or self._model

        try:
            response = await acompletion(
                model=use_model,
                messages=[m.to_dict() for m in messages],
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self._timeout,
                num_retries=self._max_retries,
                **self._get_provider_params(use_model),
                **kwargs,
            )

            content = response.choices[0].message.content or ""
            finish_reason = response.choices[0].finish_reason or "stop"
            usage = getattr(response, "usage", None)
            tokens_input = getattr(usage, "prompt_tokens", 0) or 0
            tokens_output = getattr(usage, "completion_tokens", 0) or 0

            logger.debug(
                "Completion generated: model=%s, tokens_in=%d, tokens_out=%d",
                use_model,
                tokens_input,
                tokens_output,
            )

            return LLMResponse(
                content=content,
                model=use_model,
                tokens_input=tokens_input,
                tokens_output=tokens_output,
                finish_reason=finish_reason,
                raw_response=response,
            )

        except Exception as e:
            logger.error(
                "Completion failed: model=%s, message_count=%d, error=%s",
                use_model,
                len(messages),
                str(e),
            )
            raise LLMError(
                message=f"Completion failed: {str(e)}",
                model=use_model,
                original_error=e,
            ) from e

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        model: Optional[str] = None,
    ) -> Transcription:
        """Transcribe recorded audio to text.

        Args:
            audio: Raw audio bytes.
            filename: File name hint used by the provider to detect format.
            model: Override the configured transcription model.

        Returns:
            Transcription with text and optional language/duration.

        Raises:
            LLMError: If transcription fails.
            ValueError: If audio is empty.
        """
        if not audio:
            raise ValueError("Audio cannot be empty")

        use_model = model or self._settings.transcription_model
        audio_file = io.BytesIO(audio)
        audio_file.name = filename

        try:
            response = await atranscription(
                model=use_model,
                file=audio_file,
                response_format="verbose_json",
                timeout=self._timeout,
                **self._get_provider_params(use_model),
            )
        except Exception as e:
            logger.error("Transcription failed: model=%s, error=%s", use_model, str(e))
            raise LLMError(
                message=f"Transcription failed: {str(e)}",
                model=use_model,
                original_error=e,
            ) from e

        return Transcription(
            text=getattr(response, "text", "") or "",
            language=getattr(response, "language", None),
            duration=getattr(response, "duration", None),
        )

    def __repr__(self) -> str:
        return f"LLMClient(model={self._model!r}, timeout={self._timeout})"
