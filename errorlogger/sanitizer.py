"""sanitizer.py - Redaction of sensitive values in structured context.

A key is sensitive when its lowercase form *contains* one of the configured
terms, so ``"db_password"`` and ``"public_key"`` are both redacted. Matching
values are replaced with ``"[REDACTED]"`` whatever their type.
"""

from typing import Any, Iterable, Mapping

REDACTED = "[REDACTED]"

SENSITIVE_TERMS = (
    "password",
    "passwd",
    "secret",
    "token",
    "auth",
    "key",
    "apikey",
    "api_key",
    "access_token",
    "accesstoken",
    "credential",
    "private",
    "ssn",
    "social_security",
    "cc",
    "card",
    "credit",
    "cvv",
    "cvc",
)


class Sanitizer:
    """Recursively redact sensitive keys in a JSON-shaped mapping.

    Args:
        extra_terms: Additional substrings unioned with ``SENSITIVE_TERMS``.
        max_list_items: Lists longer than this are truncated before their
            elements are sanitized.

    Example:
        >>> Sanitizer().sanitize({"password": "x", "nested": {"ok": "z"}})
        {'password': '[REDACTED]', 'nested': {'ok': 'z'}}
    """

    def __init__(self, extra_terms: Iterable[str] = (), max_list_items: int = 1000) -> None:
        terms = list(SENSITIVE_TERMS)
        for term in extra_terms:
            term = term.strip().lower()
            if term and term not in terms:
                terms.append(term)
        self.terms = tuple(terms)
        self.max_list_items = max_list_items

    def is_sensitive(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(term in lowered for term in self.terms)

    def sanitize(self, data: Mapping[Any, Any]) -> dict:
        """Return a sanitized copy of ``data``; the input is not modified."""
        result = {}
        for key, value in data.items():
            if self.is_sensitive(key):
                result[key] = REDACTED
            else:
                result[key] = self._sanitize_value(value)
        return result

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return self.sanitize(value)
        if isinstance(value, (list, tuple)):
            return [self._sanitize_value(item) for item in value[: self.max_list_items]]
        return value
