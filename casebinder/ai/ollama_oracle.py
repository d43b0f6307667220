"""
Ollama-backed Analysis Oracle for CaseBinder.

Talks to a local Ollama server over its REST API:
- analyze(): /api/generate with format="json" (structured output mode);
  images are passed base64-encoded to vision models. Ollama does not read
  PDFs, so a PDF is sent as its digital text, plus rendered page images
  when the text layer is too thin (scanned documents)
- extract_text(): plain /api/generate asking for verbatim text (OCR) from
  an image or from the rendered pages of a PDF
- transcribe(): an OpenAI-compatible /v1/audio/transcriptions endpoint
  (e.g. a local Whisper server), since Ollama has no audio input

HTTP failures are classified at this boundary:
    timeout, connection error, 408, 429, 5xx -> RetriableOracleError
    400 and every other 4xx, blocked content -> FatalOracleError

Every call goes through call_with_retry(), so only retriable failures are
retried.
"""

import asyncio
import base64
import time

import requests

from casebinder.config import (
    ANALYSIS_MAX_INPUT_CHARS,
    MIN_DIGITAL_TEXT_CHARS,
    OLLAMA_CONTEXT_WINDOW,
    OLLAMA_TIMEOUT_SECONDS,
    TRANSCRIPTION_MODEL_NAME,
    get_setting,
)
from casebinder.errors import FatalOracleError, RetriableOracleError
from casebinder.extraction.pdf_sanitizer import render_pdf_pages
from casebinder.extraction.text_extractors import extract_pdf_text
from casebinder.logging_config import debug_log
from casebinder.models import AnalysisResult

from .analysis_oracle import AnalysisOracle, analysis_from_payload
from .json_repair import parse_possibly_truncated_json
from .retry import call_with_retry

ANALYSIS_PROMPT = """
Analyze this document ({filename}). Extract the following JSON structure:
{{
  "summary": ["point 1", "point 2", "point 3"],
  "timeline": [{{ "date": "YYYY-MM-DD", "event": "Description", "severity": "Low|Medium|High|Critical", "category": "Category", "quote": "Exact quote" }}],
  "issues": [{{ "category": "Discrimination|Procedure|etc", "description": "Issue details", "severity": "Low|Medium|High" }}],
  "entities": [{{ "name": "Person Name", "role": "HR|Management|etc", "sentiment": "Hostile|Neutral|Supportive" }}],
  "medicalEvidence": [{{ "date": "YYYY-MM-DD", "type": "Symptom|Diagnosis", "value": "Details", "context": "Context" }}],
  "policyReferences": [{{ "policyName": "Name", "complianceStatus": "Breached|Followed", "quote": "Quote" }}]
}}
Return ONLY the JSON object.
"""

EXTRACT_TEXT_PROMPT = (
    "Extract all readable text from this document. Provide ONLY the text content, "
    "no markdown or comments. If no text is found, return 'No readable text'."
)

BLOCKED_DONE_REASONS = {'blocked', 'safety', 'content_filter'}


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


def classify_http_status(status_code: int, detail: str) -> Exception:
    """Map an HTTP error status onto the oracle error taxonomy."""
    message = f"Oracle returned HTTP {status_code}: {detail[:200]}"
    if status_code in (408, 429) or status_code >= 500:
        return RetriableOracleError(message)
    return FatalOracleError(message)


class OllamaOracle(AnalysisOracle):
    """
    AnalysisOracle implementation using Ollama's REST API.

    Args:
        api_base: Ollama server URL (defaults to the ollama_api_base setting).
        model_name: Model used for analysis and OCR.
        transcription_api_base: OpenAI-compatible transcription server URL.
        timeout: Per-request timeout in seconds.
        session: Optional requests.Session (injected by tests).
    """

    def __init__(
        self,
        api_base: str | None = None,
        model_name: str | None = None,
        transcription_api_base: str | None = None,
        timeout: float = OLLAMA_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.api_base = (api_base or get_setting('ollama_api_base')).rstrip('/')
        self.model_name = model_name or get_setting('ollama_model_name')
        self.transcription_api_base = (
            transcription_api_base or get_setting('transcription_api_base')
        ).rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def check_connection(self) -> bool:
        """Return True if the Ollama server answers /api/tags."""
        try:
            response = self.session.get(f"{self.api_base}/api/tags", timeout=5)
            connected = response.status_code == 200
        except requests.exceptions.RequestException as e:
            debug_log(f"[ORACLE] Connection error: Cannot reach {self.api_base}: {e}")
            return False
        debug_log(f"[ORACLE] Connection {'successful' if connected else 'failed'}")
        return connected

    # ------------------------------------------------------------------
    # HTTP plumbing (blocking; always called via asyncio.to_thread)
    # ------------------------------------------------------------------

    def _post(self, url: str, **kwargs) -> dict:
        try:
            response = self.session.post(url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise RetriableOracleError(f"Oracle request timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise RetriableOracleError(f"Could not connect to oracle at {url}") from e

        if response.status_code != 200:
            raise classify_http_status(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise RetriableOracleError("Oracle returned a non-JSON envelope") from e

    def _generate(self, prompt: str, images: list[str] | None = None, json_mode: bool = False) -> str:
        payload = {
            "model": self.model_name,
            "prompt": prompt,
            "stream": False,
            "options": {
                "num_ctx": OLLAMA_CONTEXT_WINDOW,
                "temperature": 0.0,
            },
        }
        if json_mode:
            payload["format"] = "json"
        if images:
            payload["images"] = images

        start_time = time.time()
        result = self._post(f"{self.api_base}/api/generate", json=payload)
        done_reason = str(result.get('done_reason') or '').lower()
        if done_reason in BLOCKED_DONE_REASONS:
            raise FatalOracleError(
                f"AI blocked content. Reason: {done_reason}. Try redacting sensitive names."
            )
        text = (result.get('response') or '').strip()
        debug_log(
            f"[ORACLE] Generated {len(text)} chars in {time.time() - start_time:.2f}s "
            f"(model={self.model_name}, images={len(images or [])})"
        )
        return text

    def _pdf_page_images(self, content: bytes) -> list[str]:
        return [_b64(png) for png in render_pdf_pages(content)]

    def _analyze_sync(self, content: bytes | str, declared_type: str, filename: str, doc_id: str) -> AnalysisResult | None:
        prompt = ANALYSIS_PROMPT.format(filename=filename)
        images = None
        if isinstance(content, bytes):
            if declared_type == 'application/pdf':
                text = extract_pdf_text(content).strip()
                if len(text) < MIN_DIGITAL_TEXT_CHARS:
                    # Scanned PDF: the pages themselves are the document
                    debug_log(f"[ORACLE] {filename} has {len(text)} digital chars, sending page images")
                    images = self._pdf_page_images(content)
                if text:
                    prompt = f"{prompt}\nDOCUMENT:\n{text[:ANALYSIS_MAX_INPUT_CHARS]}"
            else:
                images = [_b64(content)]
        else:
            prompt = f"{prompt}\nDOCUMENT:\n{content[:ANALYSIS_MAX_INPUT_CHARS]}"

        response_text = self._generate(prompt, images=images, json_mode=True)
        if not response_text:
            debug_log(f"[ORACLE] Empty analysis response for {filename}")
            return None

        payload = parse_possibly_truncated_json(response_text)
        if payload is None:
            debug_log(f"[ORACLE] Failed to parse JSON from analysis response for {filename}")
            return None
        return analysis_from_payload(payload, doc_id)

    def _extract_text_sync(self, content: bytes, mime_type: str) -> str:
        if mime_type == 'application/pdf':
            images = self._pdf_page_images(content)
        else:
            images = [_b64(content)]
        return self._generate(EXTRACT_TEXT_PROMPT, images=images)

    def _transcribe_sync(self, audio: bytes, mime_type: str) -> str:
        extension = mime_type.split('/')[-1]
        result = self._post(
            f"{self.transcription_api_base}/v1/audio/transcriptions",
            files={'file': (f"audio.{extension}", audio, mime_type)},
            data={'model': TRANSCRIPTION_MODEL_NAME},
        )
        text = (result.get('text') or '').strip()
        if not text:
            raise FatalOracleError("Model returned empty transcription.")
        return text

    # ------------------------------------------------------------------
    # AnalysisOracle interface
    # ------------------------------------------------------------------

    async def analyze(self, content, declared_type, filename, doc_id):
        return await call_with_retry(
            lambda: asyncio.to_thread(self._analyze_sync, content, declared_type, filename, doc_id)
        )

    async def transcribe(self, audio, mime_type):
        return await call_with_retry(
            lambda: asyncio.to_thread(self._transcribe_sync, audio, mime_type)
        )

    async def extract_text(self, content, mime_type):
        return await call_with_retry(
            lambda: asyncio.to_thread(self._extract_text_sync, content, mime_type)
        )
