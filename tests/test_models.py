"""
Tests for dataset, template and execution models.
"""

import pytest
from pydantic import ValidationError

from shopdata.models import (
    Dataset,
    DependentTemplate,
    ExecutionStatus,
    ResetResult,
)

SECONDARY = "query($ids: [ID!]!) { nodes(ids: {{IDS}}) { id } }"


class TestExecutionStatus:
    """Lifecycle predicates."""

    @pytest.mark.parametrize(
        "status,terminal,active",
        [
            (ExecutionStatus.PENDING, False, True),
            (ExecutionStatus.RUNNING, False, True),
            (ExecutionStatus.COMPLETED, True, False),
            (ExecutionStatus.FAILED, True, False),
            (ExecutionStatus.STUCK, False, False),
        ],
    )
    def test_predicates(self, status, terminal, active):
        assert status.is_terminal is terminal
        assert status.is_active is active

    def test_compares_to_plain_strings(self):
        assert ExecutionStatus("running") == "running"


class TestDataset:
    def _dataset(self, **parameters):
        return Dataset(
            id="ds-1",
            user_id="user-1",
            source_id="src-1",
            dataset_type="custom",
            parameters=parameters,
        )

    def test_max_items_is_coerced(self):
        assert self._dataset(maxItems="25").max_items == 25

    def test_max_items_absent(self):
        assert self._dataset().max_items is None

    def test_variables_are_copied(self):
        dataset = self._dataset(variables={"query": "status:open"})

        variables = dataset.variables
        variables["extra"] = 1

        assert dataset.variables == {"query": "status:open"}

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            Dataset(id="ds-1", user_id="u", source_id="s", dataset_type="report")


class TestDependentTemplate:
    def test_requires_ids_placeholder(self):
        with pytest.raises(ValidationError, match="IDS"):
            DependentTemplate(
                name="t",
                primary_query="{ products(first: 1) { edges { node { id } } } }",
                secondary_query="{ nodes(ids: []) { id } }",
                id_path="id",
            )

    def test_requires_id_path(self):
        with pytest.raises(ValidationError):
            DependentTemplate(name="t", primary_query="{}", secondary_query=SECONDARY, id_path="")

    def test_strategy_is_normalized(self):
        template = DependentTemplate(
            name="t",
            primary_query="{}",
            secondary_query=SECONDARY,
            id_path="id",
            merge_strategy=" Nested ",
        )

        assert template.merge_strategy == "nested"

    def test_strategy_defaults_to_reference(self):
        template = DependentTemplate(
            name="t", primary_query="{}", secondary_query=SECONDARY, id_path="id"
        )

        assert template.merge_strategy == "reference"


class TestResetResult:
    def test_serializes_camel_case(self):
        result = ResetResult(reset_count=2, reset_ids=["a", "b"])

        assert result.model_dump(by_alias=True) == {"resetCount": 2, "resetIds": ["a", "b"]}

    def test_accepts_camel_case(self):
        assert ResetResult.model_validate({"resetCount": 1, "resetIds": ["a"]}).reset_ids == ["a"]
