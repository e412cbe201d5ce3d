"""
LLM API Client

The provider exposes an OpenAI-compatible API, so we use the openai library
for both chat completions and embeddings.

- Low temperature for structured output
- JSON mode where the prompt asks for a JSON object
- Transient failures are retried by the SDK (max_retries)
"""
import json
import logging
import re
from typing import List

from openai import OpenAI

from niena.core.config import get_settings
from niena.core.errors import AgentOutputError

settings = get_settings()
logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")


class LLMClient:
    """
    Wrapper for the chat and embedding endpoints.
    """

    def __init__(self, client: OpenAI = None):
        self.client = client or OpenAI(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries
        )
        self.model = settings.llm_model
        self.embedding_model = settings.embedding_model

    def chat(
        self,
        system_prompt: str,
        user_content: str,
        max_tokens: int = 2000,
        temperature: float = 0.2,
        json_mode: bool = False
    ) -> str:
        """
        Call the chat endpoint and return the raw text response.
        """
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content}
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            **kwargs
        )
        content = response.choices[0].message.content
        if not content:
            logger.error("LLM returned empty content for model '%s'", self.model)
            raise AgentOutputError("AI returned empty response")
        return content

    def extract_json(self, text: str):
        """
        Extract JSON from a model response.
        Handles markdown code fences and prose around the object.
        """
        return extract_json(text)

    def embed(self, text: str) -> List[float]:
        """Embed one piece of text."""
        response = self.client.embeddings.create(
            model=self.embedding_model,
            input=text,
            encoding_format="float"
        )
        return list(response.data[0].embedding)

    def check_connection(self) -> bool:
        """True when the chat endpoint answers a one-word prompt."""
        try:
            response = self.chat(
                "You are a connectivity check.",
                "Reply with exactly: OK",
                max_tokens=10
            )
            return "OK" in response.upper()
        except Exception as e:
            logger.warning("LLM connection failed: %s", e)
            return False


def extract_json(text: str):
    """
    Parse the JSON payload of a model answer.

    Tries, in order: a fenced ```json block, the whole text, and the
    outermost {...} or [...] span.
    """
    if text is None:
        raise AgentOutputError("AI returned no content")

    candidate = text.strip()
    match = _FENCED_JSON.search(candidate)
    if match:
        candidate = match.group(1).strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = candidate.find(opener)
        end = candidate.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(candidate[start:end + 1])
            except json.JSONDecodeError:
                continue

    raise AgentOutputError(f"AI returned invalid JSON: {candidate[:200]}")


# Singleton instance
_llm_client: LLMClient = None


def get_llm_client() -> LLMClient:
    """Get or create LLM client (singleton pattern)"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
