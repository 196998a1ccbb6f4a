"""Chat-completion client for OpenRouter with linear-backoff retries."""

import logging
from typing import Any, Callable, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ..config import settings
from ..models import UpstreamGenerationError
from ..observability import get_langchain_callback_handler
from .retry import create_retry_decorator, log_retry_success

logger = logging.getLogger(__name__)

ChatModelFactory = Callable[[str, int], Any]


class EmptyLLMResponse(ValueError):
    """Raised when the provider answered without any text."""


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        content = "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return (content or "").strip()


class LLMClient:
    """Send one prompt to the chat-completion endpoint and return trimmed text.

    Retries up to ``max_attempts`` times on any failure, including an empty
    reply, sleeping ``backoff_seconds * attempt`` between attempts. A missing
    API key fails immediately.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        chat_model_factory: Optional[ChatModelFactory] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openrouter_api_key
        self.model = model or settings.openrouter_model
        self.base_url = base_url or settings.openrouter_base_url
        self.temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self.max_attempts = max_attempts or settings.llm_max_retries
        self.backoff_seconds = (
            backoff_seconds
            if backoff_seconds is not None
            else settings.llm_backoff_seconds
        )
        self.chat_model_factory = chat_model_factory or self._build_chat_model
        self.sleep = sleep
        self.last_attempts = 0

    def _build_chat_model(self, model: str, max_tokens: int) -> ChatOpenAI:
        callbacks = []
        handler = get_langchain_callback_handler()
        if handler:
            callbacks.append(handler)

        return ChatOpenAI(
            model=model,
            temperature=self.temperature,
            api_key=self.api_key,
            base_url=self.base_url,
            max_tokens=max_tokens,
            timeout=settings.llm_timeout,
            max_retries=0,  # retries are handled here
            callbacks=callbacks or None,
            default_headers={"X-Title": settings.app_title},
        )

    def _invoke_once(self, messages: list, max_tokens: int, model: str) -> str:
        self.last_attempts += 1
        chat_model = self.chat_model_factory(model, max_tokens)
        text = _message_text(chat_model.invoke(messages))
        if not text:
            raise EmptyLLMResponse("No content returned from LLM")
        return text

    def _complete(self, messages: list, max_tokens: int, model: Optional[str]) -> str:
        if not self.api_key:
            raise UpstreamGenerationError("Missing OPENROUTER_API_KEY")

        model = model or self.model
        self.last_attempts = 0
        attempt = create_retry_decorator(
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
            sleep=self.sleep,
        )(self._invoke_once)

        try:
            text = attempt(messages, max_tokens, model)
        except Exception as e:
            logger.error(
                f"LLM call failed after {self.last_attempts} attempt(s) ({model}): {e}"
            )
            raise UpstreamGenerationError(
                str(e) or type(e).__name__,
                context={"attempts": self.last_attempts, "model": model},
            ) from e

        log_retry_success("llm_call", self.last_attempts, self.max_attempts)
        return text

    def call(self, prompt: str, max_tokens: int = 2000, model: Optional[str] = None) -> str:
        """Send a single user prompt."""
        return self._complete([HumanMessage(content=prompt)], int(max_tokens), model)

    def call_with_system(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 8000,
        model: Optional[str] = None,
    ) -> str:
        """Send a system prompt followed by a user prompt."""
        messages = [SystemMessage(content=system), HumanMessage(content=prompt)]
        return self._complete(messages, int(max_tokens), model)


_default_client: Optional[LLMClient] = None


def get_default_client() -> LLMClient:
    global _default_client
    if _default_client is None:
        _default_client = LLMClient()
    return _default_client


def call_llm(prompt: str, max_tokens: int = 2000) -> str:
    """Call the configured provider with the default client."""
    return get_default_client().call(prompt, max_tokens)
