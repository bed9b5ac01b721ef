"""Custom field validation against the App Foundations definition schema.

The remote definitions are the source of truth for a field's data type. The
functions in this module never raise for bad input: every outcome is reported
through a verdict object so the request layer can decide how to respond.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from qbo_bridge.schemas.custom_fields import CustomFieldDefinition, CustomFieldInput


DefinitionSnapshot = dict[str, CustomFieldDefinition]
DefinitionRecord = Union[CustomFieldDefinition, Mapping[str, Any]]
DefinitionsProvider = Callable[[], Awaitable[Sequence[DefinitionRecord]]]
CandidateField = Union[CustomFieldInput, Mapping[str, Any]]

DEFINITION_NOT_FOUND = (
    "Custom field definition not found. Please ensure the field exists in QuickBooks."
)
TYPE_NOT_PROVIDED = "(not provided)"

_NUMERIC_STRING = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")

logger = logging.getLogger("qbo_bridge.services.custom_field_validation")


class CustomFieldValidationError(ValueError):
    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("Custom field validation failed: " + "; ".join(self.errors))


@dataclass(frozen=True)
class FieldVerdict:
    valid: bool
    error: Optional[str] = None
    expected_type: Optional[str] = None


@dataclass
class BatchVerdict:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class CorrectionResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    corrected: list[str] = field(default_factory=list)
    fields: list[CustomFieldInput] = field(default_factory=list)


class DefinitionCache:
    """Holds the last fetched definition snapshot, keyed by legacy id.

    A failed fetch yields an empty snapshot which is not stored, so lookups
    report "not found" and the next call tries the provider again.
    """

    def __init__(self, provider: DefinitionsProvider):
        self._provider = provider
        self._snapshot: Optional[DefinitionSnapshot] = None

    @property
    def is_populated(self) -> bool:
        return self._snapshot is not None

    async def get(self) -> DefinitionSnapshot:
        if self._snapshot is not None:
            return self._snapshot
        try:
            records = await self._provider()
            snapshot = build_snapshot(records)
        except Exception as exc:
            logger.warning(
                "custom_field_definitions_unavailable",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return {}
        self._snapshot = snapshot
        logger.info(
            "custom_field_definitions_cached",
            extra={"definition_count": len(snapshot)},
        )
        return snapshot

    def invalidate(self) -> None:
        self._snapshot = None


def build_snapshot(records: Iterable[DefinitionRecord]) -> DefinitionSnapshot:
    snapshot: DefinitionSnapshot = {}
    for record in records:
        if isinstance(record, CustomFieldDefinition):
            definition = record
        else:
            try:
                definition = CustomFieldDefinition.model_validate(record)
            except ValidationError as exc:
                logger.warning(
                    "custom_field_definition_skipped",
                    extra={"error": str(exc)},
                )
                continue
        if not definition.legacy_id:
            continue
        snapshot[definition.legacy_id] = definition
    return snapshot


def has_definition_id(definition_id: str) -> bool:
    """An id of "0" counts as missing, same as an empty one."""
    return definition_id not in ("", "0")


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    if isinstance(value, str):
        return _NUMERIC_STRING.match(value) is not None
    return False


def to_number(value: Any) -> float:
    if not is_numeric(value):
        return 0.0
    if isinstance(value, str):
        return float(value.strip())
    return float(value)


def stringify(value: Any) -> str:
    # Integral floats drop the fraction at any magnitude, so 1e20 renders as
    # "100000000000000000000" rather than in exponent form.
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def value_kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, (float, Decimal)):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def check_value(definition: CustomFieldDefinition, data_type: str, value: Any) -> Optional[str]:
    """Return the error for ``value`` under ``data_type``, or None when it fits."""
    data_type = data_type.upper()
    if data_type == "NUMBER":
        if not is_numeric(value):
            return f"Value must be numeric for NUMBER field (got: {value_kind(value)})"
    elif data_type == "STRING":
        if isinstance(value, (list, tuple, set, frozenset, dict)):
            return f"Value cannot be converted to string (got: {value_kind(value)})"
    elif data_type == "DROPDOWN":
        # An empty option list accepts anything.
        valid_values = definition.option_values
        if valid_values:
            rendered = stringify(value)
            if rendered not in valid_values:
                return (
                    f"Value '{rendered}' is not a valid dropdown option. "
                    f"Valid options: {', '.join(valid_values)}"
                )
    return None


def validate_field(
    definitions: Mapping[str, CustomFieldDefinition],
    definition_id: str,
    value: Any,
    provided_type: Optional[str] = None,
) -> FieldVerdict:
    definition = definitions.get(definition_id)
    if definition is None:
        return FieldVerdict(valid=False, error=DEFINITION_NOT_FOUND)

    expected_type = definition.expected_type
    if not definition.active:
        return FieldVerdict(
            valid=False,
            error=f"Custom field definition {definition_id} is not active",
            expected_type=expected_type,
        )

    if provided_type is not None and provided_type.upper() != expected_type:
        return FieldVerdict(
            valid=False,
            error=(
                f"Type mismatch: provided '{provided_type}' "
                f"but definition expects '{expected_type}'"
            ),
            expected_type=expected_type,
        )

    error = check_value(definition, expected_type, value)
    if error is not None:
        return FieldVerdict(valid=False, error=error, expected_type=expected_type)
    return FieldVerdict(valid=True, expected_type=expected_type)


def validate_fields(
    definitions: Mapping[str, CustomFieldDefinition],
    candidates: Iterable[CandidateField],
) -> BatchVerdict:
    errors: list[str] = []
    warnings: list[str] = []
    for index, candidate in enumerate(candidates):
        field_input = _coerce_candidate(candidate)
        if not has_definition_id(field_input.definition_id):
            errors.append(f"Field at index {index}: definitionId is required")
            continue
        verdict = validate_field(
            definitions,
            field_input.definition_id,
            field_input.value,
            field_input.type,
        )
        if not verdict.valid:
            errors.append(f"Field {field_input.definition_id}: {verdict.error}")
    return BatchVerdict(valid=not errors, errors=errors, warnings=warnings)


def correct_and_validate(
    definitions: Mapping[str, CustomFieldDefinition],
    candidates: Iterable[CandidateField],
) -> CorrectionResult:
    """Rewrite each candidate's type from its definition, then check its value.

    Returns corrected copies in input order; the given candidates are left untouched.
    """
    errors: list[str] = []
    corrected: list[str] = []
    fields: list[CustomFieldInput] = []

    for index, candidate in enumerate(candidates):
        field_input = _coerce_candidate(candidate)
        definition_id = field_input.definition_id
        if not has_definition_id(definition_id):
            errors.append(f"Field at index {index}: definitionId is required")
            fields.append(field_input)
            continue

        definition = definitions.get(definition_id)
        if definition is None:
            errors.append(f"Field {definition_id}: {DEFINITION_NOT_FOUND}")
            fields.append(field_input)
            continue
        if not definition.active:
            errors.append(f"Field {definition_id}: Custom field definition is not active")
            fields.append(field_input)
            continue

        expected_type = definition.expected_type
        provided_type = field_input.type
        if (provided_type or "").upper() != expected_type:
            from_type = TYPE_NOT_PROVIDED if provided_type is None else f"'{provided_type}'"
            field_input = field_input.model_copy(update={"type": expected_type})
            corrected.append(
                f"Field {definition_id}: type corrected from {from_type} to '{expected_type}'"
            )
        fields.append(field_input)

        error = check_value(definition, field_input.type or expected_type, field_input.value)
        if error is not None:
            errors.append(f"Field {definition_id}: {error}")

    return CorrectionResult(valid=not errors, errors=errors, corrected=corrected, fields=fields)


def build_custom_field_payload(definition_id: str, value: Any, type: str = "STRING") -> dict[str, Any]:
    payload: dict[str, Any] = {"DefinitionId": definition_id}
    if type.upper() == "NUMBER":
        # Non numeric input silently becomes 0.0.
        payload["NumberValue"] = to_number(value)
    else:
        payload["StringValue"] = stringify(value)
    return payload


def build_custom_field_payloads(fields: Iterable[CustomFieldInput]) -> list[dict[str, Any]]:
    payloads: list[dict[str, Any]] = []
    for field_input in fields:
        if not has_definition_id(field_input.definition_id):
            continue
        payloads.append(
            build_custom_field_payload(
                field_input.definition_id,
                field_input.value,
                field_input.type or "STRING",
            )
        )
    return payloads


def _coerce_candidate(candidate: CandidateField) -> CustomFieldInput:
    if isinstance(candidate, CustomFieldInput):
        return candidate.model_copy()
    return CustomFieldInput.model_validate(dict(candidate))


class CustomFieldValidationService:
    def __init__(self, cache: DefinitionCache):
        self.cache = cache
        self.logger = logging.getLogger("qbo_bridge.services.custom_field_validation")

    def invalidate(self) -> None:
        self.cache.invalidate()

    async def validate_field(
        self,
        definition_id: str,
        value: Any,
        provided_type: Optional[str] = None,
    ) -> FieldVerdict:
        definitions = await self.cache.get()
        return validate_field(definitions, definition_id, value, provided_type)

    async def validate_fields(self, candidates: Sequence[CandidateField]) -> BatchVerdict:
        definitions = await self.cache.get()
        verdict = validate_fields(definitions, candidates)
        self.logger.info(
            "custom_field_validation_completed",
            extra={
                "mode": "validate",
                "field_count": len(candidates),
                "error_count": len(verdict.errors),
                "valid": verdict.valid,
            },
        )
        return verdict

    async def correct_and_validate(self, candidates: Sequence[CandidateField]) -> CorrectionResult:
        definitions = await self.cache.get()
        result = correct_and_validate(definitions, candidates)
        self.logger.info(
            "custom_field_validation_completed",
            extra={
                "mode": "correct",
                "field_count": len(candidates),
                "error_count": len(result.errors),
                "correction_count": len(result.corrected),
                "valid": result.valid,
            },
        )
        return result

    async def prepare_payloads(
        self, candidates: Sequence[CandidateField]
    ) -> tuple[list[dict[str, Any]], CorrectionResult]:
        """Correct and validate, then build wire payloads from the corrected fields."""
        result = await self.correct_and_validate(candidates)
        if not result.valid:
            raise CustomFieldValidationError(result.errors)
        return build_custom_field_payloads(result.fields), result
