"""LLM answer client for QuizLens.

Talks to an OpenAI-compatible chat completions endpoint (Groq by default).
`stream_answer` reads the server-sent-event response with aiohttp and yields the
accumulated answer after every token; `get_answer` is the single-shot variant and
goes through the async OpenAI SDK client.
"""
import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
import openai
from openai import AsyncOpenAI

from ..utils.config_loader import API_KEY_ENV, config as config_manager, get_api_key
from ..utils.log_config import get_component_logger
from ..utils.text_utils import clean_ocr_text
from .constants import API_KEY_MISSING, MAX_OCR_CHARS
from .errors import CredentialMissing, NetworkFailure, StreamParseFailure

SYSTEM_PROMPT = """You answer multiple-choice trivia questions from OCR screen captures.

STEPS:
1. Read the OCR text. Identify the QUESTION and the ANSWER OPTIONS (A/B/C/D or numbered choices).
2. Determine which option is correct.
3. Output ONLY the exact text of that option, copied character-for-character from the input.

ABSOLUTE RULES:
- You MUST select one of the provided answer options. NEVER make up your own wording.
- Copy the chosen option EXACTLY as it appears in the OCR text, even if there are OCR typos.
- Do NOT add any prefix like "Answer:", "The answer is", "Option B:", or any label.
- Do NOT explain, do NOT add punctuation, do NOT rephrase.
- If there are 4 options like "Paris", "London", "Berlin", "Madrid" and the answer is Paris, output exactly: Paris
- If you cannot identify answer options, give a direct factual answer in 4 words max.
- ALWAYS answer, even if unsure. Pick the best option."""

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def extract_delta_content(data: str) -> Optional[str]:
    """Token carried by one streamed chunk, or None for chunks without content."""
    try:
        delta = json.loads(data)["choices"][0]["delta"]
        content = delta.get("content")
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        raise StreamParseFailure(f"{type(e).__name__}: {data[:80]}") from e
    if content is not None and not isinstance(content, str):
        raise StreamParseFailure(f"non-text content: {data[:80]}")
    return content


class StreamingAnswerClient:
    """Asks the LLM backend for the answer to an OCR'd question."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 base_url: Optional[str] = None,
                 model: Optional[str] = None,
                 temperature: Optional[float] = None,
                 max_tokens: Optional[int] = None,
                 connect_timeout: Optional[float] = None,
                 read_timeout: Optional[float] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 openai_client: Optional[AsyncOpenAI] = None):
        self.api_key = api_key if api_key is not None else get_api_key()
        self.base_url = base_url or config_manager.get('llm', 'base_url')
        self.model = model or config_manager.get('llm', 'model')
        self.temperature = temperature if temperature is not None else config_manager.get('llm', 'temperature', 0.0)
        self.max_tokens = max_tokens or config_manager.get('llm', 'max_tokens', 30)
        self.connect_timeout = connect_timeout or config_manager.get('llm', 'connect_timeout', 1.0)
        self.read_timeout = read_timeout or config_manager.get('llm', 'read_timeout', 8.0)

        self._session = session
        self._openai = openai_client
        self.logger = get_component_logger("Answer")

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def build_messages(self, cleaned_text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": cleaned_text}
        ]

    def build_request_body(self, cleaned_text: str, stream: bool) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": self.build_messages(cleaned_text),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": stream
        }

    def check_credentials(self) -> None:
        """Raise CredentialMissing when no API key is configured."""
        if not self.api_key:
            raise CredentialMissing(f"{API_KEY_ENV} is not set")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self.connect_timeout,
                sock_read=self.read_timeout
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _get_openai_client(self) -> AsyncOpenAI:
        if self._openai is None:
            self._openai = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.read_timeout,
                max_retries=0
            )
        return self._openai

    async def stream_answer(self, question_text: str) -> AsyncIterator[str]:
        """Yield the accumulated answer after each streamed token.

        Closing the iterator (or cancelling the task consuming it) closes the HTTP
        response, so nothing is yielded afterwards and the connection is freed.
        """
        try:
            self.check_credentials()
        except CredentialMissing as e:
            self.logger.error(f"API key missing, not calling backend: {e}")
            yield API_KEY_MISSING
            return

        cleaned_text = clean_ocr_text(question_text, MAX_OCR_CHARS)
        self.logger.debug(f"Streaming to backend ({len(cleaned_text)} chars): {cleaned_text[:120]}")
        body = self.build_request_body(cleaned_text, stream=True)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with self._get_session().post(self.completions_url, json=body, headers=headers) as response:
                if not 200 <= response.status < 300:
                    error_body = await response.text()
                    self.logger.error(f"Streaming error {response.status}: {error_body[:200]}")
                    raise NetworkFailure(f"API error: {response.status}", status=response.status)

                accumulated = ""
                try:
                    async for raw_line in response.content:
                        line = raw_line.decode("utf-8", errors="replace").strip()
                        if not line.startswith(SSE_DATA_PREFIX):
                            continue
                        data = line[len(SSE_DATA_PREFIX):].strip()
                        if data == SSE_DONE:
                            break

                        try:
                            token = extract_delta_content(data)
                        except StreamParseFailure as e:
                            self.logger.warning(f"Failed to parse SSE chunk: {e}")
                            continue

                        if token:
                            accumulated += token
                            partial = accumulated.strip()
                            if partial:
                                yield partial
                except (asyncio.CancelledError, GeneratorExit):
                    self.logger.debug("Answer stream cancelled, closing HTTP response")
                    response.close()
                    raise

                self.logger.info(f"Streaming complete: {accumulated.strip()}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Streaming call failed: {e!r}")
            raise NetworkFailure(str(e) or type(e).__name__) from e

    async def get_answer(self, question_text: str) -> str:
        """Single-shot variant: the complete answer from one non-streaming call."""
        try:
            self.check_credentials()
        except CredentialMissing as e:
            self.logger.error(f"API key missing, not calling backend: {e}")
            return API_KEY_MISSING

        cleaned_text = clean_ocr_text(question_text, MAX_OCR_CHARS)
        self.logger.debug(f"Sending to backend ({len(cleaned_text)} chars): {cleaned_text[:120]}")
        try:
            response = await self._get_openai_client().chat.completions.create(
                model=self.model,
                messages=self.build_messages(cleaned_text),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=False
            )
        except openai.APIStatusError as e:
            self.logger.error(f"Backend error {e.status_code}: {e.message}")
            raise NetworkFailure(f"API error: {e.status_code}", status=e.status_code) from e
        except openai.APIError as e:
            self.logger.error(f"Backend call failed: {e}")
            raise NetworkFailure(str(e)) from e

        answer = (response.choices[0].message.content or "").strip()
        self.logger.info(f"Backend answer: {answer}")
        return answer

    async def close(self) -> None:
        """Release the HTTP session and SDK client."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        if self._openai is not None:
            await self._openai.close()
            self._openai = None
