"""Fallible decoding of completion output into typed structures.

Model output is untrusted text.  Every decoder here returns a
:class:`Decoded` value that either carries the parsed structure or the
reason decoding failed; the decoders never raise on bad input.
Callers decide whether a failure is fatal (design) or downgraded to a
fallback (critique, integrate).
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from polyplex.core.task.models import Architecture, Critique, IntegrationResult
from polyplex.utils.exceptions import MalformedOutputError

T = TypeVar("T")

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)
_CODE_FENCE_RE = re.compile(r"^\s*```[\w.+-]*[^\n]*\n(.*?)\n?```\s*$", re.DOTALL)


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Tagged decode result: ``value`` on success, ``error`` on failure."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Decoded[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "Decoded[T]":
        return cls(error=error)

    def unwrap(self, role: str) -> T:
        """Return the value or raise :class:`MalformedOutputError` for *role*."""
        if self.error is not None:
            raise MalformedOutputError(role, self.error)
        return self.value


def extract_json(text: str | None) -> Decoded[dict[str, Any]]:
    """Best-effort JSON object extraction from completion output.

    Handles responses that are plain JSON as well as those wrapped in
    markdown ```json ... ``` fences or surrounded by prose.
    """
    if text is None or not text.strip():
        return Decoded.failure("empty response")
    text = text.strip()

    candidates = [text]
    match = _FENCE_RE.search(text)
    if match:
        candidates.append(match.group(1).strip())
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return Decoded.success(data)
    return Decoded.failure("no JSON object found in response")


def strip_code_fences(text: str) -> str:
    """Remove a single surrounding markdown code fence, if present."""
    match = _CODE_FENCE_RE.match(text)
    if match:
        return match.group(1)
    return text.strip("\n")


def _validate(data: dict[str, Any], model: type[BaseModel]) -> Decoded:
    try:
        return Decoded.success(model.model_validate(data))
    except ValidationError as exc:
        return Decoded.failure(f"{model.__name__} did not validate: {exc.error_count()} error(s)")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return False
    try:
        return math.isfinite(float(value))
    except (ValueError, OverflowError):
        return False


def decode_architecture(text: str | None) -> Decoded[Architecture]:
    """Decode a design response; a design without artifact specs is a failure."""
    raw = extract_json(text)
    if not raw.ok:
        return raw
    decoded = _validate(raw.value, Architecture)
    if decoded.ok and not decoded.value.files:
        return Decoded.failure("design lists no artifacts")
    return decoded


def decode_critique(text: str | None) -> Decoded[Critique]:
    raw = extract_json(text)
    if not raw.ok:
        return raw
    if "score" not in raw.value:
        return Decoded.failure("critique has no score")
    if not _is_number(raw.value["score"]):
        return Decoded.failure("critique score is not a number")
    return _validate(raw.value, Critique)


def decode_integration(text: str | None) -> Decoded[IntegrationResult]:
    raw = extract_json(text)
    if not raw.ok:
        return raw
    if not isinstance(raw.value.get("compatible"), bool):
        return Decoded.failure("integration verdict has no compatible flag")
    return _validate(raw.value, IntegrationResult)
