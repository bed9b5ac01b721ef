from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _scalar_text(value: Any) -> Optional[str]:
    """Render a scalar as text; composites and booleans become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return None


class DropDownOption(BaseModel):
    """One dropdown choice; unparseable attributes are blanked instead of rejected."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    value: Optional[str] = None
    active: Optional[bool] = None
    order: Optional[int] = None

    @field_validator("id", "value", mode="before")
    @classmethod
    def coerce_to_string(cls, value: Any) -> Any:
        return _scalar_text(value)

    @field_validator("active", mode="before")
    @classmethod
    def coerce_active(cls, value: Any) -> Any:
        return _flag(value)

    @field_validator("order", mode="before")
    @classmethod
    def coerce_order(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            return None


class CustomFieldDefinition(BaseModel):
    """Snapshot of one App Foundations custom field definition node.

    Only the legacy id decides whether a node is usable; malformed secondary
    attributes fall back to their defaults.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    legacy_id: Optional[str] = Field(default=None, alias="legacyIDV2")
    label: Optional[str] = None
    data_type: Optional[str] = Field(default=None, alias="dataType")
    active: bool = False
    drop_down_options: list[DropDownOption] = Field(default_factory=list, alias="dropDownOptions")

    @field_validator("id", "legacy_id", "label", "data_type", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _scalar_text(value)

    @field_validator("active", mode="before")
    @classmethod
    def default_inactive(cls, value: Any) -> Any:
        return bool(_flag(value))

    @field_validator("drop_down_options", mode="before")
    @classmethod
    def default_options(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return []
        return [option for option in value if isinstance(option, (dict, DropDownOption))]

    @property
    def expected_type(self) -> str:
        return (self.data_type or "STRING").upper()

    @property
    def option_values(self) -> list[str]:
        return [option.value for option in self.drop_down_options if option.value is not None]


class CustomFieldInput(BaseModel):
    """Caller supplied custom field assignment awaiting validation."""

    model_config = ConfigDict(populate_by_name=True)

    definition_id: str = Field(default="", alias="definitionId")
    value: Any = ""
    type: Optional[str] = None

    @field_validator("definition_id", mode="before")
    @classmethod
    def coerce_definition_id(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "1" if value else ""
        return str(value)

    @field_validator("value", mode="before")
    @classmethod
    def default_value(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class CustomFieldValidateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    custom_fields: list[CustomFieldInput] = Field(default_factory=list, alias="customFields")


class CustomFieldDefinitionWrite(BaseModel):
    """Body accepted when creating or updating a definition."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    label: Optional[str] = None
    data_type: Optional[str] = Field(default=None, alias="dataType")
    active: Optional[bool] = None
    associations: Optional[list[dict[str, Any]]] = None
    drop_down_options: Optional[list[dict[str, Any]]] = Field(default=None, alias="dropDownOptions")
    description: Optional[str] = None
    legacy_id: Optional[str] = Field(default=None, alias="legacyIDV2")

    def to_graphql_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
