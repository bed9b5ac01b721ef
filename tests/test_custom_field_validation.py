"""Tests for the custom field validator, type corrector and payload builder."""

import pytest

from qbo_bridge.schemas.custom_fields import CustomFieldInput
from qbo_bridge.services.custom_field_validation import (
    DEFINITION_NOT_FOUND,
    build_custom_field_payload,
    build_custom_field_payloads,
    build_snapshot,
    correct_and_validate,
    is_numeric,
    stringify,
    validate_field,
    validate_fields,
)


# =============================================================================
# validate_field
# =============================================================================


class TestValidateField:
    def test_unknown_definition_is_not_found(self, definitions):
        verdict = validate_field(definitions, "999", "anything")

        assert verdict.valid is False
        assert verdict.error == DEFINITION_NOT_FOUND
        assert verdict.expected_type is None

    def test_empty_snapshot_always_reports_not_found(self):
        for value in (5, "3.5", "A", ""):
            verdict = validate_field({}, "42", value)
            assert verdict.valid is False
            assert verdict.error == DEFINITION_NOT_FOUND

    def test_inactive_definition_reports_expected_type(self, definitions):
        verdict = validate_field(definitions, "13", "text")

        assert verdict.valid is False
        assert verdict.error == "Custom field definition 13 is not active"
        assert verdict.expected_type == "STRING"

    def test_type_mismatch_skips_value_check(self, definitions):
        verdict = validate_field(definitions, "42", "not a number", "string")

        assert verdict.valid is False
        assert verdict.error == "Type mismatch: provided 'string' but definition expects 'NUMBER'"
        assert verdict.expected_type == "NUMBER"

    def test_provided_type_is_case_insensitive(self, definitions):
        verdict = validate_field(definitions, "42", "12", "number")

        assert verdict.valid is True
        assert verdict.expected_type == "NUMBER"

    def test_number_rejects_non_numeric_string(self, definitions):
        verdict = validate_field(definitions, "42", "abc")

        assert verdict.valid is False
        assert verdict.error == "Value must be numeric for NUMBER field (got: string)"

    def test_number_rejects_booleans(self, definitions):
        verdict = validate_field(definitions, "42", True)

        assert verdict.valid is False
        assert "got: boolean" in verdict.error

    def test_string_data_type_is_normalized_to_upper_case(self, definitions):
        verdict = validate_field(definitions, "7", "north")

        assert verdict.valid is True
        assert verdict.expected_type == "STRING"

    @pytest.mark.parametrize(
        ("value", "kind"),
        [(["a"], "array"), ({"a": 1}, "object")],
    )
    def test_string_rejects_composites(self, definitions, value, kind):
        verdict = validate_field(definitions, "7", value)

        assert verdict.valid is False
        assert verdict.error == f"Value cannot be converted to string (got: {kind})"

    def test_dropdown_accepts_listed_option(self, definitions):
        assert validate_field(definitions, "9", "A").valid is True

    def test_dropdown_rejects_unlisted_option_and_lists_choices_in_order(self, definitions):
        verdict = validate_field(definitions, "9", "C")

        assert verdict.valid is False
        assert verdict.error == "Value 'C' is not a valid dropdown option. Valid options: A, B"

    def test_dropdown_match_is_case_sensitive(self, definitions):
        assert validate_field(definitions, "9", "a").valid is False

    def test_dropdown_without_options_accepts_anything(self, definitions):
        assert validate_field(definitions, "11", "whatever").valid is True
        assert validate_field(definitions, "11", 12).valid is True

    def test_unrecognized_data_type_skips_value_check(self, definitions_with_date):
        verdict = validate_field(definitions_with_date, "21", ["anything"])

        assert verdict.valid is True
        assert verdict.expected_type == "DATE"


@pytest.fixture
def definitions_with_date(definition_nodes):
    nodes = definition_nodes + [
        {"id": "djQ6Nw", "legacyIDV2": "21", "dataType": "date", "active": True},
    ]
    return build_snapshot(nodes)


# =============================================================================
# validate_fields
# =============================================================================


class TestValidateFields:
    def test_missing_definition_id_is_reported_by_index(self, definitions):
        verdict = validate_fields(
            definitions,
            [{"definitionId": "", "value": 1}, {"definitionId": "42", "value": 5}],
        )

        assert verdict.valid is False
        assert verdict.errors == ["Field at index 0: definitionId is required"]
        assert verdict.warnings == []

    def test_errors_follow_input_order(self, definitions):
        verdict = validate_fields(
            definitions,
            [
                {"definitionId": "9", "value": "Z"},
                {"definitionId": "404", "value": "x"},
                {"value": "no id"},
                {"definitionId": "42", "value": "7"},
            ],
        )

        assert verdict.errors == [
            "Field 9: Value 'Z' is not a valid dropdown option. Valid options: A, B",
            f"Field 404: {DEFINITION_NOT_FOUND}",
            "Field at index 2: definitionId is required",
        ]

    def test_all_valid(self, definitions):
        verdict = validate_fields(
            definitions,
            [
                CustomFieldInput(definition_id="42", value=5, type="NUMBER"),
                CustomFieldInput(definition_id="9", value="B"),
            ],
        )

        assert verdict.valid is True
        assert verdict.errors == []

    @pytest.mark.parametrize("definition_id", ["0", 0])
    def test_zero_definition_id_counts_as_missing(self, definitions, definition_id):
        verdict = validate_fields(definitions, [{"definitionId": definition_id, "value": 1}])

        assert verdict.errors == ["Field at index 0: definitionId is required"]

    def test_numeric_definition_id_is_accepted(self, definitions):
        verdict = validate_fields(definitions, [{"definitionId": 42, "value": 1}])

        assert verdict.valid is True


# =============================================================================
# correct_and_validate
# =============================================================================


class TestCorrectAndValidate:
    def test_missing_type_is_corrected_from_definition(self, definitions):
        result = correct_and_validate(definitions, [{"definitionId": "42", "value": "3.5"}])

        assert result.valid is True
        assert result.errors == []
        assert result.corrected == ["Field 42: type corrected from (not provided) to 'NUMBER'"]
        assert result.fields[0].type == "NUMBER"

    def test_correction_then_value_failure(self, definitions):
        result = correct_and_validate(definitions, [{"definitionId": "42", "value": "abc"}])

        assert result.valid is False
        assert len(result.corrected) == 1
        assert len(result.errors) == 1
        assert "numeric" in result.errors[0]
        assert result.errors[0].startswith("Field 42: ")

    def test_wrong_type_is_quoted_in_correction(self, definitions):
        result = correct_and_validate(
            definitions, [{"definitionId": "42", "value": 10, "type": "STRING"}]
        )

        assert result.valid is True
        assert result.corrected == ["Field 42: type corrected from 'STRING' to 'NUMBER'"]

    def test_matching_type_in_other_case_is_not_corrected(self, definitions):
        result = correct_and_validate(
            definitions, [{"definitionId": "42", "value": 10, "type": "number"}]
        )

        assert result.corrected == []
        assert result.fields[0].type == "number"

    def test_type_mismatch_never_reported(self, definitions):
        result = correct_and_validate(
            definitions, [{"definitionId": "9", "value": "A", "type": "NUMBER"}]
        )

        assert result.valid is True
        assert not any("Type mismatch" in error for error in result.errors)

    def test_unknown_and_inactive_are_skipped_without_correction(self, definitions):
        result = correct_and_validate(
            definitions,
            [
                {"definitionId": "", "value": "x"},
                {"definitionId": "404", "value": "x"},
                {"definitionId": "13", "value": "x"},
            ],
        )

        assert result.corrected == []
        assert result.errors == [
            "Field at index 0: definitionId is required",
            f"Field 404: {DEFINITION_NOT_FOUND}",
            "Field 13: Custom field definition is not active",
        ]
        assert [field.type for field in result.fields] == [None, None, None]

    def test_zero_definition_id_is_reported_by_index(self, definitions):
        result = correct_and_validate(definitions, [{"definitionId": "0", "value": "x"}])

        assert result.errors == ["Field at index 0: definitionId is required"]
        assert result.corrected == []
        assert build_custom_field_payloads(result.fields) == []

    def test_empty_snapshot_fails_every_candidate(self):
        result = correct_and_validate({}, [{"definitionId": "42", "value": 5}])

        assert result.valid is False
        assert result.errors == [f"Field 42: {DEFINITION_NOT_FOUND}"]

    def test_input_candidates_are_not_mutated(self, definitions):
        candidate = CustomFieldInput(definition_id="42", value="3")

        result = correct_and_validate(definitions, [candidate])

        assert candidate.type is None
        assert result.fields[0].type == "NUMBER"
        assert result.fields[0] is not candidate

    def test_fields_preserve_input_order(self, definitions):
        result = correct_and_validate(
            definitions,
            [
                {"definitionId": "9", "value": "B"},
                {"definitionId": "7", "value": "x"},
                {"definitionId": "42", "value": 1},
            ],
        )

        assert [field.definition_id for field in result.fields] == ["9", "7", "42"]
        assert [field.type for field in result.fields] == ["DROPDOWN", "STRING", "NUMBER"]


# =============================================================================
# Payload builder
# =============================================================================


class TestBuildCustomFieldPayload:
    def test_number_payload_is_stable(self):
        first = build_custom_field_payload("42", 5, "NUMBER")

        for _ in range(3):
            assert build_custom_field_payload("42", 5, "NUMBER") == first
        assert first == {"DefinitionId": "42", "NumberValue": 5.0}
        assert isinstance(first["NumberValue"], float)

    def test_number_type_is_case_insensitive(self):
        assert build_custom_field_payload("42", "2.5", "number") == {
            "DefinitionId": "42",
            "NumberValue": 2.5,
        }

    def test_non_numeric_number_becomes_zero(self):
        assert build_custom_field_payload("42", "abc", "NUMBER") == {
            "DefinitionId": "42",
            "NumberValue": 0.0,
        }

    @pytest.mark.parametrize("field_type", ["STRING", "DROPDOWN", "SOMETHING_ELSE"])
    def test_other_types_use_string_slot(self, field_type):
        payload = build_custom_field_payload("9", "A", field_type)

        assert payload == {"DefinitionId": "9", "StringValue": "A"}

    def test_default_type_is_string(self):
        assert build_custom_field_payload("7", 12) == {"DefinitionId": "7", "StringValue": "12"}

    def test_payloads_use_corrected_types(self, definitions):
        result = correct_and_validate(
            definitions,
            [
                {"definitionId": "42", "value": "3.5", "type": "STRING"},
                {"definitionId": "9", "value": "A"},
            ],
        )

        assert build_custom_field_payloads(result.fields) == [
            {"DefinitionId": "42", "NumberValue": 3.5},
            {"DefinitionId": "9", "StringValue": "A"},
        ]

    def test_payloads_skip_fields_without_definition_id(self):
        fields = [
            CustomFieldInput(definition_id="", value="x"),
            CustomFieldInput(definition_id="7", value="x"),
        ]

        assert build_custom_field_payloads(fields) == [{"DefinitionId": "7", "StringValue": "x"}]


# =============================================================================
# Helpers
# =============================================================================


@pytest.mark.parametrize("value", [5, 3.5, "3.5", " 12 ", "1e3", "-.5", "+7", "10."])
def test_is_numeric_accepts(value):
    assert is_numeric(value) is True


@pytest.mark.parametrize("value", ["abc", "", "0x1A", "1,000", None, True, False, [1], {"a": 1}])
def test_is_numeric_rejects(value):
    assert is_numeric(value) is False


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, ""),
        (True, "1"),
        (False, ""),
        (5.0, "5"),
        (2.5, "2.5"),
        (7, "7"),
        ("x", "x"),
        (1e20, "100000000000000000000"),
    ],
)
def test_stringify(value, expected):
    assert stringify(value) == expected


def test_build_snapshot_drops_definitions_without_legacy_id(definition_nodes):
    snapshot = build_snapshot(definition_nodes)

    assert sorted(snapshot) == ["11", "13", "42", "7", "9"]
    assert snapshot["42"].expected_type == "NUMBER"
