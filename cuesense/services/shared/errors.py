"""Exception taxonomy shared by every CueSense service.

Low-confidence outcomes are not errors: they come back as ordinary results
carrying the "unrecognized" sentinel and a zero confidence.
"""
from __future__ import annotations

from typing import List, Sequence


class CueSenseError(Exception):
    """Base class for engine failures."""


class DecodeError(CueSenseError):
    """Audio could not be read or decoded. Raised before analysis starts."""


class ProviderError(CueSenseError):
    """Transport-level failure talking to the LLM provider."""


class JudgeFailure(CueSenseError):
    """One signal source failed to produce a usable answer."""

    def __init__(self, source: str, message: str):
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.message = message


class AggregateFailure(CueSenseError):
    """Every signal source for a required step failed."""

    def __init__(self, step: str, errors: Sequence[BaseException]):
        self.step = step
        self.errors: List[BaseException] = list(errors)
        detail = "; ".join(str(e) for e in self.errors) or "no sources ran"
        super().__init__(f"All sources failed for {step}: {detail}")
