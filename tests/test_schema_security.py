"""
Tests for schema sensitivity scanning and redaction.
"""

from shopdata.core.schema.security import (
    REDACTED,
    classify,
    redact_processed_schema,
    redact_sensitive_info,
    scan_schema,
)
from shopdata.models import SecurityClassification


def _processed(fields, description=None):
    return {
        "rootResources": [{"name": "customers", "description": description}],
        "objectTypes": {"Customer": {"name": "Customer", "fields": fields}},
        "metadata": {},
    }


class TestClassification:
    def test_levels(self):
        assert classify(set()) is SecurityClassification.PUBLIC
        assert classify({"key", "access"}) is SecurityClassification.INTERNAL
        assert classify({"secret", "key"}) is SecurityClassification.CONFIDENTIAL
        assert classify({"password", "private"}) is SecurityClassification.RESTRICTED

    def test_redaction_threshold(self):
        assert not SecurityClassification.INTERNAL.requires_redaction
        assert SecurityClassification.CONFIDENTIAL.requires_redaction
        assert SecurityClassification.RESTRICTED.requires_redaction


class TestScan:
    def test_public_schema(self):
        scan = scan_schema(_processed([{"name": "email", "type": "String"}]))

        assert scan.classification is SecurityClassification.PUBLIC
        assert scan.is_sensitive is False
        assert scan.matches == {}

    def test_counts_matches(self):
        scan = scan_schema(
            _processed(
                [
                    {"name": "apiSecretKey", "type": "String"},
                    {"name": "publicKey", "type": "String"},
                ]
            )
        )

        assert scan.matches["key"] == 2
        assert scan.matches["secret"] == 1
        assert scan.categories == frozenset({"key", "secret"})
        assert scan.classification is SecurityClassification.CONFIDENTIAL


class TestRedactProcessedSchema:
    def test_masks_sensitive_field_names(self):
        processed = _processed(
            [
                {"name": "email", "type": "String", "description": "Contact"},
                {"name": "passwordHash", "type": "String", "description": "Hash"},
            ]
        )

        redacted, changed = redact_processed_schema(processed)

        fields = redacted["objectTypes"]["Customer"]["fields"]
        assert changed is True
        assert fields[0] == {"name": "email", "type": "String", "description": "Contact"}
        assert fields[1]["name"] == "passwordHash"
        assert fields[1]["type"] == REDACTED
        assert fields[1]["redacted"] is True
        assert redacted["metadata"]["redacted"] is True

    def test_masks_sensitive_descriptions(self):
        processed = _processed(
            [{"name": "note", "type": "String", "description": "Requires auth scope"}],
            description="Private customer list",
        )

        redacted, _ = redact_processed_schema(processed)

        assert redacted["objectTypes"]["Customer"]["fields"][0]["description"] == REDACTED
        assert redacted["rootResources"][0]["description"] == REDACTED

    def test_input_is_not_mutated(self):
        processed = _processed([{"name": "secret", "type": "String"}])

        redact_processed_schema(processed)

        assert processed["objectTypes"]["Customer"]["fields"][0]["type"] == "String"

    def test_nothing_to_redact(self):
        redacted, changed = redact_processed_schema(_processed([{"name": "id", "type": "ID"}]))

        assert changed is False
        assert "redacted" not in redacted["metadata"]


class TestRedactSensitiveInfo:
    def test_masks_credentials_recursively(self):
        config = {
            "storeName": "acme",
            "accessToken": "shpat_123",
            "nested": [{"apiKey": "k", "region": "eu"}],
        }

        assert redact_sensitive_info(config) == {
            "storeName": "acme",
            "accessToken": "REDACTED",
            "nested": [{"apiKey": "REDACTED", "region": "eu"}],
        }
