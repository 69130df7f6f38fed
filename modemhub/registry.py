"""
In-memory user registry mutated by the BG95 modem.

The registry is an explicit object: it owns an insertion-ordered mapping
of id -> UserRecord plus the counter used to generate ids. Each serving
process builds its own instance, so state resets on restart and diverges
between instances.

apply() never raises for caller mistakes. It returns Ok or Err so the
HTTP layer decides which status code each error kind gets.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from modemhub.errors import (
    ActionError,
    NotFoundError,
    UnknownActionError,
    ValidationError,
)
from modemhub.models import (
    ACTION_MODELS,
    AddUser,
    DeleteUser,
    UpdateUser,
    UserAction,
    UserRecord,
    UserStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_USERS = (
    UserRecord(id=1, name="John Doe", status=UserStatus.ACTIVE, device_model="iPhone 15 Pro"),
    UserRecord(id=2, name="Jane Smith", status=UserStatus.INACTIVE, device_model="Samsung Galaxy S24"),
    UserRecord(id=3, name="Mike Johnson", status=UserStatus.ACTIVE, device_model="Google Pixel 8"),
    UserRecord(id=4, name="Sarah Wilson", status=UserStatus.INACTIVE, device_model="OnePlus 12"),
)


class UserListing(BaseModel):
    """Result of list()."""

    success: bool = True
    data: List[UserRecord]
    count: int
    message: str


class Ok(BaseModel):
    """Successful registry action."""

    ok: bool = True
    action: str
    message: str
    user: Optional[UserRecord] = None
    old_user: Optional[UserRecord] = None
    all_users: List[UserRecord]


class Err(BaseModel):
    """Failed registry action; ``error.kind`` tells which failure."""

    ok: bool = False
    action: Optional[str] = None
    error: ActionError

    class Config:
        """Pydantic v2 config."""

        arbitrary_types_allowed = True

    @property
    def kind(self) -> str:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.message


ActionResult = Union[Ok, Err]


def _describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", ())) or "user"
        parts.append(f"{field}: {error.get('msg')}")
    return "Invalid user fields: " + "; ".join(parts)


def parse_action(action: Any, payload: Any) -> UserAction:
    """
    Turn a raw (action, user) pair into a typed action model.

    Presence checks run before pydantic parsing so callers see the same
    messages the modem firmware already understands.

    Raises:
        UnknownActionError: action is not add, update or delete
        ValidationError: a required field is missing or invalid
    """
    if not isinstance(action, str) or action not in ACTION_MODELS:
        raise UnknownActionError(f"Unknown action: {action}")

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError(f"User payload must be an object, got {type(payload).__name__}")

    if action == "add":
        if not payload.get("name") or not payload.get("deviceModel"):
            raise ValidationError("Missing required fields: name and deviceModel")
    elif not payload.get("id"):
        raise ValidationError("Missing required field: user ID")

    try:
        return ACTION_MODELS[action].model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(_describe_validation_error(e)) from e


def _username_key(name: str) -> str:
    return re.sub(r"\s+", "_", name.lower())


class UserRegistry:
    """Ordered, id-unique collection of users for one process."""

    def __init__(self, seed: Iterable[UserRecord] = DEFAULT_USERS, next_id: Optional[int] = None):
        self._users: Dict[int, UserRecord] = {}
        for record in seed:
            if record.id in self._users:
                raise ValueError(f"Duplicate seed user id: {record.id}")
            self._users[record.id] = record

        if next_id is None:
            next_id = max(self._users, default=0) + 1
        self._next_id = next_id

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users

    @property
    def next_id(self) -> int:
        return self._next_id

    def get(self, user_id: int) -> Optional[UserRecord]:
        return self._users.get(user_id)

    def users(self) -> List[UserRecord]:
        return list(self._users.values())

    def list(self) -> UserListing:
        users = self.users()
        return UserListing(data=users, count=len(users), message=f"Found {len(users)} users")

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        """Legacy lookup: 'john_doe' matches 'John Doe'."""
        wanted = username.lower()
        for record in self._users.values():
            if _username_key(record.name) == wanted:
                return record
        return None

    def apply(self, action: Any, payload: Any) -> ActionResult:
        """Run one add/update/delete action against the registry."""
        try:
            command = parse_action(action, payload)
            if isinstance(command, AddUser):
                return self._add(command)
            if isinstance(command, UpdateUser):
                return self._update(command)
            return self._delete(command)
        except ActionError as e:
            logger.warning(f"Registry action {action!r} failed: {e.kind}: {e.message}")
            return Err(action=action if isinstance(action, str) else None, error=e)

    def _require(self, user_id: int) -> UserRecord:
        record = self._users.get(user_id)
        if record is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        return record

    def _add(self, command: AddUser) -> Ok:
        if command.id is not None:
            if command.id in self._users:
                raise ValidationError(f"User with ID {command.id} already exists")
            user_id = command.id
            # Keep generated ids clear of explicitly chosen ones
            self._next_id = max(self._next_id, user_id + 1)
        else:
            user_id = self._next_id
            self._next_id += 1

        record = UserRecord(
            id=user_id,
            name=command.name,
            status=command.status,
            device_model=command.device_model,
        )
        self._users[user_id] = record
        logger.info(f"Added user {user_id} ({record.name})")
        return Ok(
            action="add",
            message=f"User '{record.name}' added successfully",
            user=record,
            all_users=self.users(),
        )

    def _update(self, command: UpdateUser) -> Ok:
        old = self._require(command.id)
        # Assigning to an existing key keeps its position
        record = old.model_copy(update=command.changes())
        self._users[command.id] = record
        logger.info(f"Updated user {command.id}: {sorted(command.changes())}")
        return Ok(
            action="update",
            message=f"User '{record.name}' updated successfully",
            user=record,
            old_user=old,
            all_users=self.users(),
        )

    def _delete(self, command: DeleteUser) -> Ok:
        self._require(command.id)
        record = self._users.pop(command.id)
        logger.info(f"Deleted user {command.id} ({record.name})")
        return Ok(
            action="delete",
            message=f"User '{record.name}' deleted successfully",
            user=record,
            all_users=self.users(),
        )
