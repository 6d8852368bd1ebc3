"""
Sensitive-field scanning, classification and redaction for processed schemas,
plus credential masking for anything that gets logged.
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from typing import Any

from shopdata.models import SecurityClassification

REDACTED = "[REDACTED]"

SENSITIVE_PATTERNS: dict[str, re.Pattern[str]] = {
    "password": re.compile(r"passw(or)?d", re.IGNORECASE),
    "secret": re.compile(r"secret", re.IGNORECASE),
    "key": re.compile(r"key", re.IGNORECASE),
    "token": re.compile(r"token", re.IGNORECASE),
    "auth": re.compile(r"auth", re.IGNORECASE),
    "cred": re.compile(r"cred", re.IGNORECASE),
    "private": re.compile(r"private", re.IGNORECASE),
    "access": re.compile(r"access", re.IGNORECASE),
}

HIGH_RISK = frozenset({"password", "secret", "cred", "private"})

_CONFIG_SECRETS = frozenset(
    {"accessToken", "apiKey", "password", "consumerSecret", "secretKey", "token"}
)


@dataclass(frozen=True)
class SecurityScan:
    classification: SecurityClassification
    matches: dict[str, int] = field(default_factory=dict)

    @property
    def categories(self) -> frozenset[str]:
        return frozenset(self.matches)

    @property
    def is_sensitive(self) -> bool:
        return self.classification is not SecurityClassification.PUBLIC


def classify(categories: frozenset[str] | set[str]) -> SecurityClassification:
    high = len(HIGH_RISK & set(categories))
    if high >= 2:
        return SecurityClassification.RESTRICTED
    if high == 1:
        return SecurityClassification.CONFIDENTIAL
    if categories:
        return SecurityClassification.INTERNAL
    return SecurityClassification.PUBLIC


def scan_schema(processed: dict[str, Any]) -> SecurityScan:
    """Count pattern hits over the serialized processed schema."""
    text = json.dumps(processed, sort_keys=True)
    matches = {
        category: len(pattern.findall(text))
        for category, pattern in SENSITIVE_PATTERNS.items()
    }
    matches = {k: v for k, v in matches.items() if v}
    return SecurityScan(classification=classify(set(matches)), matches=matches)


def is_sensitive_text(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    return any(p.search(value) for p in SENSITIVE_PATTERNS.values())


def redact_processed_schema(processed: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """
    Copy of `processed` (by-alias dict form) with sensitive fields masked.

    Field names matching a sensitive pattern keep their name but lose their
    type and description; matching descriptions elsewhere are replaced.

    Returns:
        (redacted schema, whether anything was redacted)
    """
    result = copy.deepcopy(processed)
    changed = False

    for obj in (result.get("objectTypes") or {}).values():
        if is_sensitive_text(obj.get("description")):
            obj["description"] = REDACTED
            changed = True
        for f in obj.get("fields") or []:
            if is_sensitive_text(f.get("name")):
                f["type"] = REDACTED
                f["description"] = REDACTED
                f["redacted"] = True
                changed = True
            elif is_sensitive_text(f.get("description")):
                f["description"] = REDACTED
                changed = True

    for resource in result.get("rootResources") or []:
        if is_sensitive_text(resource.get("description")):
            resource["description"] = REDACTED
            changed = True

    if changed:
        result.setdefault("metadata", {})["redacted"] = True
    return result, changed


def redact_sensitive_info(value: Any) -> Any:
    """Mask credential-looking keys in a config object before logging it."""
    if isinstance(value, dict):
        return {
            k: "REDACTED" if k in _CONFIG_SECRETS else redact_sensitive_info(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact_sensitive_info(v) for v in value]
    return value
