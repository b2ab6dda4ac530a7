from __future__ import annotations

"""
LLM transcript analyzer with strict output validation.

Design intent:
- Ask the model for the full patient field set plus a speaker-labeled transcript.
- Support a hosted OpenAI-compatible endpoint (OpenRouter) or a local GGUF via llama-cpp.
- Fail closed on malformed output so callers can keep the raw transcript instead.
"""

import asyncio
import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..internal_core.config import ScribeConfig
from ..internal_core.contracts import AnalysisResponse, ExtractionResult

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS: set[str] = {"openrouter", "llama_cpp"}

SYSTEM_PROMPT = (
    "You are a medical AI that extracts structured patient information from transcripts. "
    "Always respond with valid JSON only."
)

_PROMPT_TEMPLATE = """
You are a medical AI assistant. Analyze the following medical conversation transcript and extract structured patient information.

Extract the following information in JSON format:
- patientName: Patient's full name
- age: Patient's age (number only)
- gender: Patient's gender (male/female/other)
- symptoms: Patient's reported symptoms and complaints
- medicalHistory: Any mentioned medical history, past conditions, medications, allergies
- diagnosis: Any diagnosis mentioned or suspected by the healthcare provider
- treatmentPlan: Any treatment recommendations, medications prescribed, or follow-up instructions
- formattedTranscript: The original transcript with speaker identification. For each sentence or phrase, prefix it with either "Doctor: " or "Patient: " based on who is speaking. Analyze the context to determine the speaker.
- bloodPressure: Patient's blood pressure (e.g., "120/80 mmHg")
- heartRate: Patient's heart rate (e.g., "72 bpm")
- temperature: Patient's temperature (e.g., "98.6°F" or "37°C")
- respiratoryRate: Patient's respiratory rate (e.g., "16 breaths/min")
- oxygenSaturation: Patient's oxygen saturation (e.g., "98%")
- weight: Patient's weight (e.g., "70 kg" or "154 lbs")
- height: Patient's height (e.g., "175 cm" or "5'9\\"")

Return only valid JSON with these exact field names. If information is not available, use "N/A" for that field. If information is later provided in the conversation that updates a previous "N/A" value, replace it with the new information.

Transcript:
{transcript}

Response format example:
{{
  "patientName": "N/A",
  "age": "N/A",
  "gender": "N/A",
  "symptoms": "N/A",
  "medicalHistory": "N/A",
  "diagnosis": "N/A",
  "treatmentPlan": "N/A",
  "formattedTranscript": "",
  "bloodPressure": "N/A",
  "heartRate": "N/A",
  "temperature": "N/A",
  "respiratoryRate": "N/A",
  "oxygenSaturation": "N/A",
  "weight": "N/A",
  "height": "N/A"
}}"""


class AnalyzerError(RuntimeError):
    """Raised when transcript analysis fails or returns an invalid payload."""


def build_prompt(transcript: str) -> str:
    return _PROMPT_TEMPLATE.format(transcript=transcript)


class TranscriptAnalyzer:
    def __init__(self, cfg: ScribeConfig):
        backend = cfg.SCRIBE_ANALYZER_BACKEND
        if backend not in SUPPORTED_BACKENDS:
            raise ValueError(f"Unsupported analyzer backend: {backend}")
        self._cfg = cfg
        self._backend = backend
        self._llm: Any = None
        self._debug_log_path = _resolve_debug_log_path(cfg.SCRIBE_ANALYZER_DEBUG_LOG)

    def name(self) -> str:
        return self._backend

    def extract(self, transcript: str) -> ExtractionResult:
        text = (transcript or "").strip()
        if not text:
            raise AnalyzerError("Transcript is required")

        logger.info("Analyzing transcript: %s...", text[:100])
        prompt = build_prompt(text)
        _append_debug_log(self._debug_log_path, stage="prompt_input", raw=prompt, metadata={"backend": self._backend})

        started = time.perf_counter()
        if self._backend == "llama_cpp":
            raw = self._complete_llama_cpp(prompt)
        else:
            raw = self._complete_openrouter(prompt)
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        _append_debug_log(
            self._debug_log_path,
            stage="raw_output",
            raw=raw,
            metadata={"backend": self._backend, "elapsed_ms": elapsed_ms},
        )

        payload = _parse_json_object(raw)
        if payload is None:
            raise AnalyzerError("Invalid JSON response from AI")
        try:
            return ExtractionResult.model_validate(payload)
        except ValidationError as exc:
            raise AnalyzerError(f"Unexpected analyzer payload: {exc}") from exc

    def analyze(self, transcript: str) -> AnalysisResponse:
        try:
            data = self.extract(transcript)
        except AnalyzerError as exc:
            logger.warning("transcript analysis failed backend=%s: %s", self._backend, exc)
            return AnalysisResponse(success=False, error=str(exc))
        return AnalysisResponse(success=True, data=data)

    async def analyze_async(self, transcript: str) -> AnalysisResponse:
        return await asyncio.to_thread(self.analyze, transcript)

    def _messages(self, prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def _complete_openrouter(self, prompt: str) -> str:
        cfg = self._cfg
        if not cfg.OPENROUTER_API_KEY:
            raise AnalyzerError("OPENROUTER_API_KEY is not set.")
        try:
            from openai import OpenAI
        except Exception as exc:
            raise AnalyzerError(f"openai import failed: {exc}") from exc

        try:
            client = OpenAI(
                api_key=cfg.OPENROUTER_API_KEY,
                base_url=cfg.SCRIBE_OPENROUTER_BASE_URL,
                timeout=cfg.SCRIBE_ANALYZER_TIMEOUT_SECONDS,
            )
            resp = client.chat.completions.create(
                model=cfg.SCRIBE_ANALYZER_MODEL,
                messages=self._messages(prompt),
                temperature=cfg.SCRIBE_ANALYZER_TEMPERATURE,
                max_tokens=cfg.SCRIBE_ANALYZER_MAX_TOKENS,
            )
            return str(resp.choices[0].message.content or "").strip()
        except Exception as exc:
            raise AnalyzerError(f"OpenRouter API error: {exc}") from exc

    def _complete_llama_cpp(self, prompt: str) -> str:
        cfg = self._cfg
        model_path = cfg.SCRIBE_LLAMA_CPP_MODEL.strip()
        if not model_path:
            raise AnalyzerError("SCRIBE_LLAMA_CPP_MODEL is not set.")
        if not os.path.exists(model_path):
            raise AnalyzerError(f"Analyzer model file not found: {model_path}")

        if self._llm is None:
            try:
                from llama_cpp import Llama  # type: ignore
            except Exception as exc:
                raise AnalyzerError(f"llama_cpp import failed: {exc}") from exc

            llm_kwargs: dict[str, Any] = {
                "model_path": model_path,
                "n_ctx": int(cfg.SCRIBE_LLAMA_CPP_N_CTX),
                "n_gpu_layers": int(cfg.SCRIBE_LLAMA_CPP_N_GPU_LAYERS),
                "verbose": False,
            }
            if cfg.SCRIBE_LLAMA_CPP_CHAT_FORMAT:
                llm_kwargs["chat_format"] = cfg.SCRIBE_LLAMA_CPP_CHAT_FORMAT
            try:
                self._llm = Llama(**llm_kwargs)
            except Exception as exc:
                raise AnalyzerError(f"llama_cpp model load failed: {exc}") from exc

        completion_kwargs: dict[str, Any] = {
            "messages": self._messages(prompt),
            "temperature": cfg.SCRIBE_ANALYZER_TEMPERATURE,
            "max_tokens": int(cfg.SCRIBE_ANALYZER_MAX_TOKENS),
            "response_format": {"type": "json_object"},
        }
        try:
            try:
                resp = self._llm.create_chat_completion(**completion_kwargs)
            except TypeError as exc:
                if "response_format" not in str(exc):
                    raise
                completion_kwargs.pop("response_format", None)
                resp = self._llm.create_chat_completion(**completion_kwargs)
            return str(resp["choices"][0]["message"]["content"] or "").strip()
        except AnalyzerError:
            raise
        except Exception as exc:
            raise AnalyzerError(f"llama_cpp completion failed: {exc}") from exc


def build_analyzer(cfg: ScribeConfig) -> Optional[TranscriptAnalyzer]:
    """Return None when the model path is bypassed in favour of keyword rules."""
    if cfg.SCRIBE_ANALYZER_BACKEND in {"heuristic", "none", ""}:
        return None
    return TranscriptAnalyzer(cfg)


def _parse_json_object(raw: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
        if isinstance(data, dict):
            return data
    except Exception:
        pass

    extracted = _extract_first_json_object(raw)
    if not extracted:
        return None
    try:
        data = json.loads(extracted)
        if isinstance(data, dict):
            return data
    except Exception:
        return None
    return None


def _extract_first_json_object(text: str) -> str:
    start = text.find("{")
    if start < 0:
        return ""
    depth = 0
    in_str = False
    escape = False
    for i, ch in enumerate(text[start:], start=start):
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""


def _resolve_debug_log_path(raw: str) -> str | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    if raw.lower() in {"1", "true", "on", "yes"}:
        return "/tmp/voicenote_analyzer_raw.log"
    return raw


def _append_debug_log(path: str | None, *, stage: str, raw: str, metadata: dict[str, Any] | None = None) -> None:
    if not path:
        return
    try:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat()
        meta = json.dumps(metadata or {}, ensure_ascii=True)
        payload = (
            f"[{stamp}] stage={stage} meta={meta}\n"
            "-----BEGIN ANALYZER RAW-----\n"
            f"{raw}\n"
            "-----END ANALYZER RAW-----\n"
        )
        with target.open("a", encoding="utf-8") as f:
            f.write(payload)
    except Exception as exc:
        # Debug logging must never break analysis.
        logger.warning("analyzer debug log write failed: %s", exc)
