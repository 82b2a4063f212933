"""
Record schemas for the watched collections and the change events that patch them.

The backing store is authoritative; these models are the read-only copies the
synchronizer hands out. They are frozen so a consumer can never mutate a
snapshot in place.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Iterable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError


class Collection(str, Enum):
    """Tables kept live-synchronized."""

    FIRE_ZONES = "fire_zones"
    SECURITY_POINTS = "security_points"
    TEAM_MEMBERS = "team_members"


FireSeverity = Literal["Low", "Medium", "High", "Critical"]
FireStatus = Literal["Active", "Contained", "Extinguished"]
SecurityPointType = Literal["Checkpoint", "Camera", "Sensor", "Guard"]
SecurityPointStatus = Literal["Active", "Inactive", "Alert"]
TeamMemberStatus = Literal["Active", "On Call", "On Leave", "Inactive"]

Latitude = Annotated[float, Field(ge=-90, le=90)]
Longitude = Annotated[float, Field(ge=-180, le=180)]

Operation = Literal["insert", "update", "delete"]
OPERATIONS = ("insert", "update", "delete")


class Record(BaseModel):
    # from_attributes lets ORM rows validate directly; numeric ids become strings.
    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    id: str

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value: Any) -> Any:
        # SQLite hands back naive datetimes; everything is stored in UTC.
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class FireZone(Record):
    name: str
    latitude: Latitude
    longitude: Longitude
    severity: FireSeverity
    status: FireStatus
    description: Optional[str] = None
    reported_at: datetime
    updated_at: datetime


class SecurityPoint(Record):
    name: str
    latitude: Latitude
    longitude: Longitude
    type: SecurityPointType
    status: SecurityPointStatus
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TeamMember(Record):
    name: str
    role: str
    email: str
    phone: str
    avatar: Optional[str] = None
    status: TeamMemberStatus
    responsibility: Optional[str] = None
    team: str
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None
    is_on_map: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


RECORD_TYPES: dict[Collection, type[Record]] = {
    Collection.FIRE_ZONES: FireZone,
    Collection.SECURITY_POINTS: SecurityPoint,
    Collection.TEAM_MEMBERS: TeamMember,
}


def parse_collection(value: Any) -> Collection:
    """Accept a Collection or its table name; raise ValidationError otherwise."""
    if isinstance(value, Collection):
        return value
    try:
        return Collection(value)
    except ValueError as e:
        raise ValidationError(f"Unknown collection {value!r}") from e


def validate_row(collection: Collection, row: Any) -> Record:
    """
    Validate one row (mapping, ORM object or record) against the collection schema.
    """
    record_type = RECORD_TYPES[collection]
    if isinstance(row, record_type):
        return row
    try:
        return record_type.model_validate(row)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed {collection.value} row: {e}") from e


def validate_rows(collection: Collection, rows: Iterable[Any]) -> tuple[Record, ...]:
    return tuple(validate_row(collection, row) for row in rows)


@dataclass(frozen=True)
class ChangeEvent:
    """
    One insert/update/delete notification from the backing store.

    Attributes:
        collection: Which watched collection changed
        operation: 'insert', 'update' or 'delete'
        row: Full validated row (insert/update); None for deletes
        row_id: Identifier of the affected row
    """
    collection: Collection
    operation: Operation
    row: Optional[Record] = None
    row_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.row_id is None and self.row is not None:
            object.__setattr__(self, "row_id", self.row.id)

    def to_dict(self) -> dict:
        """Convert event to its JSON wire form."""
        return {
            "collection": self.collection.value,
            "operation": self.operation,
            "row": self.row.model_dump(mode="json") if self.row is not None else None,
            "row_id": self.row_id,
        }

    @classmethod
    def from_json(cls, data: Any) -> "ChangeEvent":
        """
        Build a ChangeEvent from its wire form.

        Expected JSON format:
        {
            "collection": "fire_zones",
            "operation": "update",
            "row": {...},           # required for insert/update
            "row_id": "..."         # optional when row carries an id
        }

        Raises ValidationError on malformed input.
        """
        if isinstance(data, ChangeEvent):
            return data
        if not isinstance(data, Mapping):
            raise ValidationError(f"Change event must be an object, got {type(data).__name__}")

        collection = parse_collection(data.get("collection"))

        operation = data.get("operation")
        if operation not in OPERATIONS:
            raise ValidationError(f"Unknown change operation {operation!r}")

        raw_row = data.get("row")
        raw_id = data.get("row_id")

        if operation == "delete":
            # Deletes often only carry the primary key.
            if raw_id is None and isinstance(raw_row, Mapping):
                raw_id = raw_row.get("id")
            if raw_id is None:
                raise ValidationError("Delete event carries no row identifier")
            return cls(collection=collection, operation="delete", row_id=str(raw_id))

        if not isinstance(raw_row, Mapping):
            raise ValidationError(f"{operation} event for {collection.value} carries no row")

        row = validate_row(collection, raw_row)
        if raw_id is not None and str(raw_id) != row.id:
            raise ValidationError(f"row_id {raw_id!r} does not match row id {row.id!r}")
        return cls(collection=collection, operation=operation, row=row)
