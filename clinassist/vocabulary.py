"""Keyword lists used for entity extraction and pattern learning."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Pattern, Tuple

LAB_TESTS: Tuple[str, ...] = (
    "cbc",
    "lft",
    "rft",
    "kft",
    "electrolytes",
    "hba1c",
    "lipid",
    "thyroid",
    "tsh",
    "creatinine",
    "platelet",
    "hemoglobin",
    "wbc",
    "crp",
    "esr",
    "troponin",
    "d-dimer",
    "procalcitonin",
    "lactate",
    "abg",
    "urinalysis",
    "blood culture",
    "inr",
    "bnp",
    "amylase",
    "lipase",
    "ferritin",
)

CONDITIONS: Tuple[str, ...] = (
    "fever",
    "dengue",
    "diabetes",
    "hypertension",
    "pneumonia",
    "covid",
    "infection",
    "pain",
    "injury",
)

MEDICATIONS: Tuple[str, ...] = (
    "paracetamol",
    "aspirin",
    "insulin",
    "metformin",
    "antibiotic",
    "iv fluids",
    "oxygen",
)


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> Pattern[str]:
    # Leading boundary only so plurals ("platelets", "infections") still match.
    return re.compile(r"\b" + re.escape(keyword), re.IGNORECASE)


def mentions(text: str, keyword: str) -> bool:
    return bool(_keyword_pattern(keyword).search(text))


def find_keywords(text: str, keywords: Iterable[str]) -> List[str]:
    """Return the keywords present in ``text`` in vocabulary order."""

    return [keyword for keyword in keywords if mentions(text, keyword)]


def normalise_text(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def condition_keyword(text: str) -> str:
    """Return the first known condition in ``text`` or the normalised text itself."""

    found = find_keywords(text, CONDITIONS)
    if found:
        return found[0]
    return normalise_text(text)


__all__ = [
    "LAB_TESTS",
    "CONDITIONS",
    "MEDICATIONS",
    "mentions",
    "find_keywords",
    "normalise_text",
    "condition_keyword",
]
