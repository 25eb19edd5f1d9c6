from __future__ import annotations

from datetime import datetime, timezone
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from nameledger.core.config import DEFAULT_USER
from nameledger.core.errors import RecordTransformError
from nameledger.domain.models import GeneratedNameComponent, GeneratedNameRecord, as_utc


RESOURCE_NAME_MAX = 255
RESOURCE_TYPE_MAX = 255
USER_MAX = 100
MESSAGE_MAX = 2000
COMPONENT_NAME_MAX = 100
COMPONENT_VALUE_MAX = 200

UNKNOWN_COMPONENT_NAME = "Unknown"

# Legacy writers emit up to seven fractional-second digits; Python datetimes hold six.
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def _aliases(pascal: str, camel: str, snake: str) -> AliasChoices:
    return AliasChoices(pascal, camel, snake)


class GeneratedName(BaseModel):
    """One generated name as produced by the naming engine.

    This is also the record shape of the legacy flat file, which is written
    with PascalCase keys. Reads accept PascalCase, camelCase or snake_case.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(default=0, validation_alias=_aliases("Id", "id", "id"), serialization_alias="Id")
    created_on: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=_aliases("CreatedOn", "createdOn", "created_on"),
        serialization_alias="CreatedOn",
    )
    resource_name: str = Field(
        validation_alias=_aliases("ResourceName", "resourceName", "resource_name"),
        serialization_alias="ResourceName",
    )
    resource_type_name: str = Field(
        default="",
        validation_alias=_aliases("ResourceTypeName", "resourceTypeName", "resource_type_name"),
        serialization_alias="ResourceTypeName",
    )
    user: str = Field(
        default=DEFAULT_USER,
        validation_alias=_aliases("User", "user", "user"),
        serialization_alias="User",
    )
    message: str | None = Field(
        default=None,
        validation_alias=_aliases("Message", "message", "message"),
        serialization_alias="Message",
    )
    components: list[list[str]] = Field(
        default_factory=list,
        validation_alias=_aliases("Components", "components", "components"),
        serialization_alias="Components",
    )

    @field_validator("created_on", mode="before")
    @classmethod
    def _trim_fraction(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _EXTRA_FRACTION.sub(r"\1", value)
        return value

    @field_validator("created_on")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("resource_type_name", mode="before")
    @classmethod
    def _blank_type(cls, value: Any) -> Any:
        # Legacy writers emit null for names generated without a resource type.
        return "" if value is None else value

    def to_legacy_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def component_pair(component: list[str]) -> tuple[str, str]:
    # Legacy components are short string lists: [name, value, ...].
    name = component[0] if len(component) > 0 else UNKNOWN_COMPONENT_NAME
    value = component[1] if len(component) > 1 else ""
    return name, value


def _require_length(field: str, value: str | None, limit: int, *, required: bool) -> None:
    if required and not (value or "").strip():
        raise RecordTransformError(f"{field} is required")
    if value is not None and len(value) > limit:
        raise RecordTransformError(f"{field} exceeds {limit} characters")


def build_record(
    name: GeneratedName,
    *,
    created_by: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    session_id: str | None = None,
    request_id: str | None = None,
) -> GeneratedNameRecord:
    """Map a generated name onto a new, unsaved relational record.

    Components keep their list position as sort order. Column limits are
    checked here so a bad record is rejected before it reaches the store.
    """

    _require_length("resource_name", name.resource_name, RESOURCE_NAME_MAX, required=True)
    _require_length("resource_type_name", name.resource_type_name, RESOURCE_TYPE_MAX, required=False)
    _require_length("user", name.user, USER_MAX, required=True)
    _require_length("message", name.message, MESSAGE_MAX, required=False)

    components: list[GeneratedNameComponent] = []
    for index, component in enumerate(name.components):
        component_name, component_value = component_pair(component)
        _require_length("component_name", component_name, COMPONENT_NAME_MAX, required=False)
        _require_length("component_value", component_value, COMPONENT_VALUE_MAX, required=False)
        components.append(
            GeneratedNameComponent(
                component_name=component_name,
                component_value=component_value,
                sort_order=index,
            )
        )

    return GeneratedNameRecord(
        created_on=name.created_on,
        resource_name=name.resource_name,
        resource_type_name=name.resource_type_name,
        user=name.user,
        message=name.message,
        ip_address=ip_address,
        user_agent=user_agent,
        session_id=session_id,
        request_id=request_id,
        created_by=created_by,
        components=components,
    )


def to_generated_name(record: GeneratedNameRecord) -> GeneratedName:
    # Rebuild the flat shape from a loaded record; components must be eager-loaded.
    return GeneratedName(
        id=record.id,
        created_on=record.created_on,
        resource_name=record.resource_name,
        resource_type_name=record.resource_type_name or "",
        user=record.user,
        message=record.message,
        components=[
            [component.component_name, component.component_value]
            for component in sorted(record.components, key=lambda item: item.sort_order)
        ],
    )
