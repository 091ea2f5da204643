"""
Redactor
--------
Masks sensitive content before it can reach any observable sink.

Rules:
- Total function: never raises, unmodifiable input passes through
- Static patterns only (no heuristics beyond the long-token threshold)
- Rules are immutable after construction

Every diagnostic sink in this project goes through redact() via
infra.logging.RedactionFilter. Error messages go through it too.
"""

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Mapping, Optional, Pattern
import re


PRIVATE_KEY_SENTINEL = "[REDACTED_PRIVATE_KEY]"
REDACTED = "[REDACTED]"
LONG_VALUE_SENTINEL = "[REDACTED_LONG_VALUE]"
SHORT_MASK = "********"

DEFAULT_SENSITIVE_KEYWORDS: FrozenSet[str] = frozenset({
    "private_key", "privatekey", "secret", "password", "pass", "key",
    "token", "auth", "credential", "sign", "encrypt",
})


@dataclass(frozen=True)
class RedactionRules:
    """
    Ordered rule set applied to every observable value.

    1. runs of 64+ hex digits (optionally 0x-prefixed)
    2. key=value pairs whose key contains a sensitive keyword
    3. standalone tokens longer than long_token_threshold (off when None)
    """
    sensitive_keywords: FrozenSet[str] = DEFAULT_SENSITIVE_KEYWORDS
    hex_secret_pattern: str = r"(?:0x)?[0-9a-fA-F]{64,}"
    long_token_threshold: Optional[int] = None
    short_value_length: int = 8
    _compiled: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        keywords = "|".join(
            re.escape(k) for k in sorted(self.sensitive_keywords, key=len, reverse=True)
        )
        self._compiled["hex"] = re.compile(self.hex_secret_pattern)
        # Whole key token must contain a keyword, e.g. VAULT_PRIVATE_KEY=...
        self._compiled["pair"] = re.compile(
            rf"\b([A-Za-z0-9_\-.]*(?:{keywords})[A-Za-z0-9_\-.]*)\s*=\s*([^&\s,;]+)",
            re.IGNORECASE,
        )
        if self.long_token_threshold:
            self._compiled["long"] = re.compile(
                rf"(?<!\S)[^\s\[\]]{{{self.long_token_threshold + 1},}}(?!\S)"
            )

    def pattern(self, name: str) -> Optional[Pattern]:
        return self._compiled.get(name)

    def is_sensitive_key(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(k in lowered for k in self.sensitive_keywords)


DEFAULT_RULES = RedactionRules()


def mask_value(value: Any, rules: RedactionRules = DEFAULT_RULES) -> str:
    """Mask a value stored under a sensitive key."""
    if not isinstance(value, str) or len(value) <= rules.short_value_length:
        return SHORT_MASK
    return f"{value[:4]}...{value[-4:]}"


def redact_text(text: str, rules: RedactionRules = DEFAULT_RULES) -> str:
    """Apply the string rules to a single string."""
    redacted = rules.pattern("hex").sub(PRIVATE_KEY_SENTINEL, text)
    redacted = rules.pattern("pair").sub(lambda m: f"{m.group(1)}={REDACTED}", redacted)
    long_pattern = rules.pattern("long")
    if long_pattern is not None:
        redacted = long_pattern.sub(LONG_VALUE_SENTINEL, redacted)
    return redacted


def redact_mapping(data: Mapping, rules: RedactionRules = DEFAULT_RULES) -> dict:
    """Redact a mapping: sensitive keys are masked wholesale, others recurse."""
    result = {}
    for key, value in data.items():
        if rules.is_sensitive_key(key):
            result[key] = mask_value(value, rules)
        else:
            result[key] = redact(value, rules)
    return result


def redact(value: Any, rules: RedactionRules = DEFAULT_RULES) -> Any:
    """
    Return value with sensitive content masked.

    Strings, mappings, lists and tuples are rewritten. Named tuples and
    sequence subclasses keep their type when it can be rebuilt, otherwise
    the redacted items come back as a plain tuple or list. A mapping that
    fails to iterate, and anything else, is returned unchanged.
    """
    if isinstance(value, str):
        return redact_text(value, rules)
    if isinstance(value, Mapping):
        try:
            return redact_mapping(value, rules)
        except Exception:
            return value
    if isinstance(value, (list, tuple)):
        return _rebuild(value, [redact(item, rules) for item in value])
    return value


def _rebuild(original, items: list):
    plain = tuple(items) if isinstance(original, tuple) else items
    try:
        if hasattr(original, "_fields"):
            return type(original)(*items)
        return type(original)(items)
    except Exception:
        return plain


class Redactor:
    """Redact bound to a rule set, for call sites that carry their own rules."""

    def __init__(self, rules: Optional[RedactionRules] = None):
        self.rules = rules or DEFAULT_RULES

    def __call__(self, value: Any) -> Any:
        return redact(value, self.rules)
