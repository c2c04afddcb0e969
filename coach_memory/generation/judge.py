"""
LLM judges for the save-decision classifier.

A judge turns a prompt into raw text. It is treated as slow and
fallible: callers bound it with a timeout and fall back to keyword rules
on any error.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Optional

import requests

from coach_memory.config.settings import ClassifierCfg
from coach_memory.telemetry import get_logger


class BaseJudge(ABC):
    """Abstract base class for text judges."""

    @abstractmethod
    def judge(self, prompt: str) -> str:
        """Return the model's raw text reply for the prompt."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the judge is available and ready to use."""
        pass


class MockJudge(BaseJudge):
    """
    Judge returning a fixed reply.

    Useful for development without a model server and for tests. The
    default reply declines to save, which leaves keyword evidence to
    decide.
    """

    def __init__(self, reply: Optional[str] = None, delay: float = 0.0):
        self.reply = reply if reply is not None else json.dumps({
            "shouldSave": False,
            "type": None,
            "confidence": 0.5,
            "reason": "mock judge",
            "suggestedTags": [],
        })
        self.delay = delay
        self.prompts: list = []

    def judge(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        return self.reply

    def is_available(self) -> bool:
        return True


class OllamaJudge(BaseJudge):
    """
    Judge that uses Ollama for local LLM inference.

    Ollama must be running locally (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        timeout: float = 10.0,
        temperature: float = 0.3,
    ):
        """
        Initialize Ollama judge.

        Args:
            model: Ollama model name (e.g., "llama3", "mistral")
            base_url: Ollama API base URL
            timeout: Request timeout in seconds
            temperature: Sampling temperature
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.temperature = temperature

    def is_available(self) -> bool:
        """Check if Ollama server is running."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def judge(self, prompt: str) -> str:
        """
        Ask Ollama for a JSON verdict (non-streaming).

        Raises:
            RuntimeError: If the request fails or times out
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": self.temperature},
        }

        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise RuntimeError(f"Ollama request timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Ollama request failed: {e}. Check if Ollama is running at {self.base_url}.")

        if response.status_code != 200:
            raise RuntimeError(f"Ollama API returned status {response.status_code}: {response.text}")

        return response.json().get("response", "").strip()


class OpenAIJudge(BaseJudge):
    """Judge backed by the OpenAI chat completions API."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        temperature: float = 0.3,
        max_retries: int = 0,
    ):
        import openai

        self.model = model
        self.temperature = temperature
        self.client = openai.OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.logger = get_logger(__name__)

    def is_available(self) -> bool:
        return self.client is not None

    def judge(self, prompt: str) -> str:
        """
        Ask the chat model for a verdict.

        Raises:
            RuntimeError: If the API call fails
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        except Exception as e:
            self.logger.warning("openai_judge_failed", model=self.model, error=str(e))
            raise RuntimeError(f"OpenAI request failed: {e}") from e

        return (response.choices[0].message.content or "").strip()


def create_judge(cfg: ClassifierCfg) -> Optional[BaseJudge]:
    """
    Factory for the configured judge.

    Args:
        cfg: Classifier configuration

    Returns:
        A judge, or None when LLM judging is disabled
    """
    if not cfg.use_llm or cfg.provider == "none":
        return None
    if cfg.provider == "mock":
        return MockJudge()
    if cfg.provider == "ollama":
        return OllamaJudge(
            model=cfg.model,
            base_url=cfg.base_url or "http://localhost:11434",
            timeout=cfg.timeout,
            temperature=cfg.temperature,
        )
    if cfg.provider == "openai":
        return OpenAIJudge(
            model=cfg.model,
            base_url=cfg.base_url,
            timeout=cfg.timeout,
            temperature=cfg.temperature,
        )
    raise ValueError(f"Unsupported judge provider: {cfg.provider}")
