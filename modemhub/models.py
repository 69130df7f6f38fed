"""
Pydantic data models for ModemHub.

All data crossing the HTTP boundary is parsed into these models:
- UserRecord is the stored registry entry (camelCase on the wire)
- AddUser / UpdateUser / DeleteUser form the tagged union of registry actions
- ActionEnvelope is the raw POST body sent by the modem
"""

from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class UserStatus(str, Enum):
    """Lifecycle states shared by users and products."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    DISCONTINUED = "discontinued"

    @classmethod
    def values(cls):
        return [status.value for status in cls]


class UserRecord(BaseModel):
    """A single user entry in the registry."""

    id: int
    name: str
    status: UserStatus = UserStatus.ACTIVE
    device_model: str = Field(alias="deviceModel")

    class Config:
        """Pydantic v2 config."""

        populate_by_name = True
        frozen = True

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def _reject_bool(v: Any) -> Any:
    # bool is an int subclass; pydantic would read true as id 1
    if isinstance(v, bool):
        raise ValueError("id must be a number, not a boolean")
    return v


def _blank_to_none(v: Any) -> Any:
    # Falsy values count as not provided (the modem sends "" and 0 for unset fields)
    if v is None or v == "" or v == 0 or v is False:
        return None
    return v


class AddUser(BaseModel):
    """Create a user. ``id`` is generated when omitted."""

    action: Literal["add"] = "add"
    id: Optional[int] = None
    name: str = Field(min_length=1)
    device_model: str = Field(alias="deviceModel", min_length=1)
    status: UserStatus = UserStatus.ACTIVE

    class Config:
        """Pydantic v2 config."""

        populate_by_name = True
        extra = "ignore"

    @field_validator("id", mode="before")
    @classmethod
    def optional_id(cls, v: Any) -> Any:
        return _blank_to_none(_reject_bool(v))

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v: Any) -> Any:
        return _blank_to_none(v) or UserStatus.ACTIVE


class UpdateUser(BaseModel):
    """Overwrite the provided fields of an existing user."""

    action: Literal["update"] = "update"
    id: int
    name: Optional[str] = None
    device_model: Optional[str] = Field(default=None, alias="deviceModel")
    status: Optional[UserStatus] = None

    class Config:
        """Pydantic v2 config."""

        populate_by_name = True
        extra = "ignore"

    @field_validator("id", mode="before")
    @classmethod
    def strict_id(cls, v: Any) -> Any:
        return _reject_bool(v)

    @field_validator("name", "device_model", "status", mode="before")
    @classmethod
    def skip_blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def changes(self) -> Dict[str, Any]:
        """Fields to overwrite on the stored record (unset ones excluded)."""
        fields = {
            "name": self.name,
            "device_model": self.device_model,
            "status": self.status,
        }
        return {key: value for key, value in fields.items() if value is not None}


class DeleteUser(BaseModel):
    """Remove an existing user."""

    action: Literal["delete"] = "delete"
    id: int

    class Config:
        """Pydantic v2 config."""

        extra = "ignore"

    @field_validator("id", mode="before")
    @classmethod
    def strict_id(cls, v: Any) -> Any:
        return _reject_bool(v)


UserAction = Union[AddUser, UpdateUser, DeleteUser]

ACTION_MODELS = {
    "add": AddUser,
    "update": UpdateUser,
    "delete": DeleteUser,
}


class ActionEnvelope(BaseModel):
    """POST body for the users endpoint."""

    action: Optional[Any] = None
    user: Optional[Any] = None
    old_user: Optional[Any] = Field(default=None, alias="oldUser")
    timestamp: Optional[Any] = None

    class Config:
        """Pydantic v2 config."""

        populate_by_name = True
        extra = "ignore"


class ProductStatusUpdate(BaseModel):
    """Status change for a product, reported by a named user."""

    username: str
    product_id: str = Field(alias="productId")
    status: UserStatus

    class Config:
        """Pydantic v2 config."""

        populate_by_name = True
        extra = "ignore"

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, v: Any) -> Any:
        # The modem sends numeric product ids; keep them as strings.
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class CapturedRequest(BaseModel):
    """A POST request stored by the request inbox."""

    id: int
    timestamp: str
    method: str
    headers: Dict[str, str]
    body: Any = None
    query: Dict[str, Any] = Field(default_factory=dict)
