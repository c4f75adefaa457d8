"""Thin client for calling the local Ollama chat API."""

import time
import requests

from .config import settings
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="ollama_client")

DEFAULT_TIMEOUT_SECONDS = 180.0


class OllamaClient:
    """Minimal client for the Ollama chat API."""
    def __init__(self, base_url=None, model=None, options=None, max_retries=None, retry_backoff_sec=None):
        """Initialize client configuration, defaulting to settings."""
        self.url = f"{(base_url or settings.ollama_base_url).rstrip('/')}/api/chat"
        self.model = model or settings.ollama_model
        self.options = options if options is not None else settings.ollama_options
        self.max_retries = settings.ollama_retries if max_retries is None else max_retries
        self.retry_backoff_sec = (
            settings.ollama_retry_backoff_seconds if retry_backoff_sec is None else retry_backoff_sec
        )

    def chat(self, messages, *, timeout=None, response_format=None):
        """Send a chat request and return the assistant content.

        `response_format="json"` asks Ollama to constrain output to JSON.
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": self.options,
        }
        if response_format:
            payload["format"] = response_format
        timeout = timeout or DEFAULT_TIMEOUT_SECONDS

        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                logger.debug("Ollama POST payload: %s", payload)
                r = requests.post(self.url, json=payload, timeout=timeout)
                logger.info(
                    "Ollama POST took %.2fs, response: %s",
                    r.elapsed.total_seconds(),
                    r.text[:200],
                )
            except requests.exceptions.RequestException as exc:
                last_error = exc
                logger.warning("Ollama POST failed on attempt %d: %s", attempt + 1, exc)
                if attempt < self.max_retries:
                    time.sleep(self.retry_backoff_sec)
                    continue
                raise

            if r.status_code == 200:
                break

            error_text = (r.text or "")[:200]
            if r.status_code >= 500 and attempt < self.max_retries:
                logger.warning(
                    "Ollama returned %d; retrying (attempt %d/%d).",
                    r.status_code, attempt + 1, self.max_retries + 1,
                )
                time.sleep(self.retry_backoff_sec)
                continue
            raise RuntimeError(
                f"Ollama POST failed with status {r.status_code}: {error_text} "
                f"(model={self.model}, url={self.url})"
            )
        else:
            if last_error is not None:
                raise RuntimeError(f"Ollama POST failed after retries: {last_error}") from last_error

        try:
            data = r.json()
        except ValueError as exc:
            raise RuntimeError(f"Ollama returned non-JSON response: {r.text[:200]}") from exc
        content = data.get("message", {}).get("content", "")
        if isinstance(content, (dict, list)):
            content = str(content)
        return content
