from __future__ import annotations

import math
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence, Union

PathElement = Union[str, int]

_DIGIT_RUN = re.compile(r"[0-9]+")


def _children(node: Any) -> Iterator[tuple[Any, Any]]:
    if isinstance(node, dict):
        return iter(node.items())
    if isinstance(node, list):
        return iter(enumerate(node))
    return iter(())


def walk(tree: Any) -> Iterator[tuple[Any, Any]]:
    """Yield every ``(key, value)`` pair of ``tree`` in pre-order.

    Dict entries yield their key, list elements their index.
    """
    stack = [_children(tree)]
    while stack:
        try:
            key, value = next(stack[-1])
        except StopIteration:
            stack.pop()
            continue
        yield key, value
        if isinstance(value, (dict, list)):
            stack.append(_children(value))


def dict_nodes(tree: Any) -> Iterator[dict[str, Any]]:
    """Yield every dict in ``tree`` in pre-order, the root first."""
    if isinstance(tree, dict):
        yield tree
    for _, value in walk(tree):
        if isinstance(value, dict):
            yield value


def string_values(tree: Any) -> Iterator[str]:
    for _, value in walk(tree):
        if isinstance(value, str):
            yield value


def resolve_path(node: Any, path: Sequence[PathElement]) -> Any:
    current = node
    for element in path:
        if isinstance(element, int):
            if not isinstance(current, list) or element >= len(current):
                return None
            current = current[element]
        else:
            if not isinstance(current, dict) or element not in current:
                return None
            current = current[element]
    return current


def _as_identifier(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


class ExtractionRule(Protocol):
    name: str

    def extract(self, payload: Any) -> Any: ...


@dataclass(frozen=True)
class FirstStringUnderKey:
    """First string value stored under ``key`` (exact, case-sensitive key match)."""

    key: str
    name: str = "string_under_key"

    def extract(self, payload: Any) -> Optional[str]:
        for k, value in walk(payload):
            if k == self.key and isinstance(value, str):
                return value
        return None


@dataclass(frozen=True)
class FirstPositiveNumber:
    """First positive number under any of ``keys`` (compared lower-cased)."""

    keys: frozenset[str]
    name: str = "positive_number"

    def extract(self, payload: Any) -> Optional[Decimal]:
        for k, value in walk(payload):
            if not isinstance(k, str) or k.lower() not in self.keys:
                continue
            amount = _positive_decimal(value)
            if amount is not None:
                return amount
        return None


def _positive_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() and value > 0 else None
    if isinstance(value, int):
        return Decimal(value) if value > 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value <= 0:
            return None
        return Decimal(str(value))
    return None


@dataclass(frozen=True)
class FirstIdentifierUnderKeys:
    keys: tuple[str, ...]
    name: str = "identifier_under_keys"

    def extract(self, payload: Any) -> Optional[str]:
        for k, value in walk(payload):
            if k in self.keys:
                ident = _as_identifier(value)
                if ident is not None:
                    return ident
        return None


@dataclass(frozen=True)
class StructuredReference:
    """Reference stored in one of the known container shapes.

    Each dict node is checked against every path before moving deeper, so a
    shape exposed at the root beats the same shape nested further down.
    """

    paths: tuple[tuple[PathElement, ...], ...]
    name: str = "structured_reference"

    def extract(self, payload: Any) -> Optional[str]:
        for node in dict_nodes(payload):
            for path in self.paths:
                ident = _as_identifier(resolve_path(node, path))
                if ident is not None:
                    return ident
        return None


@dataclass(frozen=True)
class KeywordDigits:
    """First digit run inside a free-text value mentioning one of ``keywords``."""

    keywords: tuple[str, ...]
    name: str = "keyword_digits"

    def extract(self, payload: Any) -> Optional[str]:
        for text in string_values(payload):
            lowered = text.lower()
            if not any(kw in lowered for kw in self.keywords):
                continue
            match = _DIGIT_RUN.search(text)
            if match:
                return match.group(0)
        return None


@dataclass(frozen=True)
class DigitsOnly:
    pattern: re.Pattern[str] = re.compile(r"[0-9]{3,10}")
    name: str = "digits_only"

    def extract(self, payload: Any) -> Optional[str]:
        for text in string_values(payload):
            if self.pattern.fullmatch(text):
                return text
        return None


def first_match(rules: Iterable[ExtractionRule], payload: Any) -> tuple[Any, Optional[str]]:
    """Evaluate ``rules`` in order; return the first value and the rule that produced it."""
    for rule in rules:
        value = rule.extract(payload)
        if value is not None:
            return value, rule.name
    return None, None
