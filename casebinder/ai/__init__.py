"""
CaseBinder AI Module
Defines the analysis oracle and its Ollama-backed implementation.

Architecture:
=============
The ingestion pipeline depends only on the AnalysisOracle interface:

    analyze(content, declared_type, filename, doc_id) -> AnalysisResult | None
    transcribe(audio, mime_type) -> str
    extract_text(content, mime_type) -> str

OllamaOracle is the shipped implementation (local Ollama server plus an
OpenAI-compatible transcription server). Retries happen only here, at the
oracle boundary, through call_with_retry().
"""

from .analysis_oracle import AnalysisOracle, analysis_from_payload
from .json_repair import balance_brackets, clean_json_string, parse_possibly_truncated_json
from .ollama_oracle import OllamaOracle, classify_http_status
from .retry import call_with_retry

__all__ = [
    'AnalysisOracle',
    'OllamaOracle',
    'analysis_from_payload',
    'balance_brackets',
    'call_with_retry',
    'classify_http_status',
    'clean_json_string',
    'parse_possibly_truncated_json',
]
