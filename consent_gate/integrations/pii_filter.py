"""consent-gate – PII Filter.

Two concerns:
- Key-based scrubbing of analytics event parameters before they are buffered.
- Regex-based masking of log records (structlog processor).
"""

import re
from typing import Any, Iterable, Mapping

import structlog

logger = structlog.get_logger()

DEFAULT_PII_KEYS: frozenset[str] = frozenset({"email", "phone", "user_id", "customer_id"})


# ──────────────────────────────────────────
# Log Patterns
# ──────────────────────────────────────────

PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(
        r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}"
    ),
    "phone_intl": re.compile(
        r"\+\d{1,3}\s?\d{3,14}"
    ),
    "credit_card": re.compile(
        r"\b\d{4}[\s\-]?\d{4}[\s\-]?\d{4}[\s\-]?\d{4}\b"
    ),
}


class PIIFilter:
    """PII scrubbing for event parameters and masking for log text.

    Usage:
        pii = PIIFilter(deny_keys=["session_token"])  # added to email, phone, ...
        safe_params, removed = pii.scrub(params)
        safe_text = pii.mask(text)  # For logging only
    """

    def __init__(
        self,
        deny_keys: Iterable[str] | None = None,
        patterns: dict[str, re.Pattern[str]] | None = None,
    ) -> None:
        # Configured keys extend the baseline, they never replace it
        extra = frozenset(key.lower() for key in (deny_keys or ()))
        self._deny_keys = DEFAULT_PII_KEYS | extra
        self._patterns = patterns or PATTERNS

    @property
    def deny_keys(self) -> frozenset[str]:
        return self._deny_keys

    def is_pii_key(self, key: str) -> bool:
        return key.lower() in self._deny_keys

    def scrub(self, parameters: Mapping[str, Any]) -> tuple[dict[str, Any], list[str]]:
        """Drop deny-listed keys from event parameters.

        Matching is case-insensitive, so ``Email`` and ``EMAIL`` are removed
        just like ``email``.

        Args:
            parameters: Raw event parameters.

        Returns:
            Tuple of (copy without PII keys, names of removed keys).
        """
        safe: dict[str, Any] = {}
        removed: list[str] = []
        for key, value in parameters.items():
            if self.is_pii_key(key):
                removed.append(key)
                continue
            safe[key] = value
        if removed:
            logger.debug("pii.keys_removed", count=len(removed))
        return safe, removed

    def mask(self, text: str) -> str:
        """Mask PII in free text for safe logging.

        - Email: user@example.com → u****@e****.com
        - Phone: +4917012345 → +4917****
        - Credit Card: 4111 1111 1111 1111 → 4111 **** **** 1111
        """
        def mask_email(match: re.Match[str]) -> str:
            local, _, domain = match.group(0).partition("@")
            domain_parts = domain.rsplit(".", 1)
            tld = domain_parts[1] if len(domain_parts) > 1 else "com"
            return f"{local[:1]}****@{domain_parts[0][:1]}****.{tld}"

        def mask_phone(match: re.Match[str]) -> str:
            full = match.group(0)
            return full[:5] + "****" if len(full) > 5 else "****"

        def mask_cc(match: re.Match[str]) -> str:
            cc = match.group(0).replace(" ", "").replace("-", "")
            return cc[:4] + " **** **** " + cc[-4:]

        result = self._patterns["email"].sub(mask_email, text)
        result = self._patterns["credit_card"].sub(mask_cc, result)
        result = self._patterns["phone_intl"].sub(mask_phone, result)
        return result


_log_filter = PIIFilter()


def filter_log_record(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: mask PII in string values and drop PII-named keys."""
    for key in list(event_dict):
        if _log_filter.is_pii_key(key):
            event_dict[key] = "****"
            continue
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = _log_filter.mask(value)
    return event_dict
