from __future__ import annotations

"""
Keyword/regex patient-field extraction used when the LLM analyzer is unavailable.

Design intent:
- Stay deterministic and cheap; precision is knowingly low.
- Produce the same shape as the analyzer so results can be merged the same way.
"""

import re
from typing import Optional

from ..internal_core.contracts import ExtractionResult

_NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:patient|my name is|i'm|i am|this is)\s+([a-z]+(?:\s+[a-z]+)*)", re.IGNORECASE),
    re.compile(r"(?:name|called?)\s+([a-z]+(?:\s+[a-z]+)*)", re.IGNORECASE),
)
_AGE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:i'm|i am|age|years old)\s*(\d{1,3})\s*(?:years old|year old|years|year)?",
        re.IGNORECASE,
    ),
    re.compile(r"(\d{1,3})\s*(?:years old|year old|years|year)", re.IGNORECASE),
)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

_FEMALE_CUES = ("female", "woman", "she/her")
_MALE_CUES = ("male", "man", "he/him")

SYMPTOM_KEYWORDS: tuple[str, ...] = (
    "pain", "hurt", "ache", "sore", "headache", "fever", "cough", "cold", "flu",
    "nausea", "vomiting", "diarrhea", "constipation", "bleeding", "swelling",
    "rash", "itching", "burning", "numbness", "tingling", "weakness", "fatigue",
    "dizzy", "shortness of breath", "chest pain", "back pain", "stomach pain",
    "sinus", "congestion", "runny nose", "sneezing", "allergies",
)
HISTORY_KEYWORDS: tuple[str, ...] = (
    "history", "previous", "before", "surgery", "operation", "medication",
    "allergic", "allergy", "diabetes", "hypertension", "blood pressure",
    "heart", "cancer", "family history", "genetic", "chronic", "condition",
)
DIAGNOSIS_KEYWORDS: tuple[str, ...] = (
    "diagnosis", "diagnosed", "condition", "syndrome", "disease", "infection",
    "inflammation", "disorder", "pneumonia", "bronchitis", "arthritis",
    "migraine", "anxiety", "depression", "strain", "sprain",
)
TREATMENT_KEYWORDS: tuple[str, ...] = (
    "treatment", "medication", "prescription", "take", "rest", "follow up",
    "therapy", "exercise", "diet", "avoid", "recommend", "suggest",
    "antibiotics", "pain relief", "ibuprofen", "acetaminophen", "aspirin",
)

_SENTENCE_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("symptoms", SYMPTOM_KEYWORDS),
    ("medical_history", HISTORY_KEYWORDS),
    ("diagnosis", DIAGNOSIS_KEYWORDS),
    ("treatment_plan", TREATMENT_KEYWORDS),
]


def extract_heuristics(text: str) -> ExtractionResult:
    transcript = text or ""
    fields: dict[str, str] = {}

    name = _extract_name(transcript)
    if name is not None:
        fields["patient_name"] = name

    age = _extract_age(transcript)
    if age is not None:
        fields["age"] = age

    gender = _extract_gender(transcript)
    if gender is not None:
        fields["gender"] = gender

    sentences = _SENTENCE_SPLIT_RE.split(transcript)
    for field_name, keywords in _SENTENCE_RULES:
        collected = _collect_sentences(sentences, keywords)
        if collected:
            fields[field_name] = collected

    return ExtractionResult(**fields)


def _extract_name(transcript: str) -> Optional[str]:
    for pattern in _NAME_PATTERNS:
        match = pattern.search(transcript)
        if not match:
            continue
        name = match.group(1).strip()
        if 1 < len(name) < 50:
            return name
    return None


def _extract_age(transcript: str) -> Optional[str]:
    for pattern in _AGE_PATTERNS:
        match = pattern.search(transcript)
        if not match:
            continue
        age = int(match.group(1))
        if 0 < age < 150:
            return str(age)
    return None


def _extract_gender(transcript: str) -> Optional[str]:
    lowered = transcript.lower()
    # Female cues first: "female" and "woman" contain the male cues.
    if any(cue in lowered for cue in _FEMALE_CUES):
        return "Female"
    if any(cue in lowered for cue in _MALE_CUES):
        return "Male"
    return None


def _collect_sentences(sentences: list[str], keywords: tuple[str, ...]) -> str:
    matched = [
        sentence.strip()
        for sentence in sentences
        if any(keyword in sentence.lower() for keyword in keywords)
    ]
    return ". ".join(matched).strip()
