from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .api import ZebraApiClient
from .errors import InvalidOperation, NotFound
from .models import Role, User
from .schemas import UserData
from .storage import JsonFileStorage

logger = logging.getLogger(__name__)


def user_from_data(data: UserData) -> User:
    return User(
        id=data.id,
        username=data.username,
        firstname=data.firstname,
        lastname=data.lastname,
        name=data.name,
        email=data.email,
        roles=tuple(
            Role(
                id=role.id,
                parent_id=role.parent_id,
                name=role.name,
                full_name=role.full_name,
                type=role.type,
                status=role.status,
            )
            for role in data.roles
        ),
    )


class UserRepository:
    """The configured Zebra user with its roles, cached in ``user_<id>.json``."""

    def __init__(
        self,
        api: ZebraApiClient,
        data_dir: Path,
        user_id: Optional[int] = None,
        default_role_id: Optional[int] = None,
    ) -> None:
        self.api = api
        self.data_dir = Path(data_dir)
        self.user_id = user_id
        self.default_role_id = default_role_id

    def _storage(self, user_id: int) -> JsonFileStorage:
        return JsonFileStorage(self.data_dir / f"user_{user_id}.json")

    def get(self, user_id: int, refresh: bool = False) -> User:
        storage = self._storage(user_id)
        if not refresh:
            cached = storage.read(default=None)
            if isinstance(cached, dict) and cached.get("id") is not None:
                return User.from_dict(cached)
        user = user_from_data(self.api.fetch_user(user_id))
        storage.write(user.to_dict())
        logger.info("Cached user %s with %d role(s)", user.id, len(user.roles))
        return user

    def current_user(self, refresh: bool = False) -> User:
        if self.user_id is None:
            raise InvalidOperation("No Zebra user configured (ZEBRA_USER_ID)")
        return self.get(self.user_id, refresh=refresh)

    def default_role(self) -> Optional[Role]:
        if self.user_id is None or self.default_role_id is None:
            return None
        role = self.current_user().find_role(self.default_role_id)
        if role is None:
            logger.warning("Default role %s is not among the roles of user %s", self.default_role_id, self.user_id)
        return role

    def find_role(self, role_id: int) -> Role:
        role = self.current_user().find_role(role_id)
        if role is None:
            raise NotFound(f"Role {role_id} not found for user {self.user_id}")
        return role


__all__ = ["UserRepository", "user_from_data"]
