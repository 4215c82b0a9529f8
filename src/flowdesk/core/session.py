# src/flowdesk/core/session.py

"""
Session / identity context.

One SessionContext lives for the whole process. It is built at startup from
durable storage (so a restart does not force a new login), is read by every
other component for the bearer token, role and organization, and is the only
place that changes the current identity: login, register (create org), join
(existing org) and logout.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from ..errors import RequiredFieldError, UnauthenticatedError, ValidationError
from ..tasks.models import Role
from .ports import Payload, SessionStorage, TrackerApi

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


@dataclass(frozen=True, slots=True)
class Identity:
    id: str
    name: str
    email: str
    role: Role
    org_name: str

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_json(self) -> str:
        data = asdict(self)
        data["role"] = self.role.value
        return json.dumps(data, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> Identity:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("identity snapshot is not an object")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            role=Role.from_api(data.get("role")),
            org_name=str(data.get("org_name") or ""),
        )

    @classmethod
    def from_api(cls, payload: Payload) -> Identity:
        # Accept both {"identity": {...}, "token": ...} and the flat shape
        # where the user fields sit next to the token.
        body = payload.get("identity") or payload.get("user") or payload
        if not isinstance(body, dict):
            raise ValidationError("The service sent an unexpected login response.")
        raw_id = body.get("_id", body.get("id"))
        if raw_id is None:
            raise ValidationError("The service sent an unexpected login response.")
        return cls(
            id=str(raw_id),
            name=str(body.get("name") or ""),
            email=str(body.get("email") or ""),
            role=Role.from_api(body.get("role")),
            org_name=str(body.get("orgName") or body.get("org_name") or ""),
        )


class FileSessionStorage:
    """
    JSON file holding the session keys.

    Writes go through a temp file + os.replace so a crash never leaves a
    half-written session; the file is chmod 0600 since it holds a credential.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Session file %s is unreadable; ignoring it.", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(OSError):
            os.chmod(self._path, 0o600)

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is None:
            return
        if data:
            self._write_all(data)
        else:
            with contextlib.suppress(FileNotFoundError):
                self._path.unlink()


def _require(**fields: Any) -> None:
    for name, value in fields.items():
        if value is None or not str(value).strip():
            raise RequiredFieldError(name)


class SessionContext:
    def __init__(self, api: TrackerApi, storage: SessionStorage) -> None:
        self._api = api
        self._storage = storage
        self._identity: Identity | None = None
        self._token: str | None = None
        self._logout_hooks: list[Callable[[], None]] = []

    # ---- read accessors ----

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None and bool(self._token)

    @property
    def is_admin(self) -> bool:
        return self._identity is not None and self._identity.is_admin

    @property
    def org_name(self) -> str | None:
        return self._identity.org_name if self._identity else None

    def require_identity(self) -> Identity:
        if self._identity is None or not self._token:
            raise UnauthenticatedError("Please log in first.")
        return self._identity

    def add_logout_hook(self, hook: Callable[[], None]) -> None:
        self._logout_hooks.append(hook)

    # ---- lifecycle ----

    def restore(self) -> Identity | None:
        """Load a previous session from durable storage (once, at startup)."""
        token = self._storage.get(TOKEN_KEY)
        raw_user = self._storage.get(USER_KEY)
        if not token or not raw_user:
            return None
        try:
            identity = Identity.from_json(raw_user)
        except (ValueError, KeyError, TypeError):
            logger.warning("Stored identity is corrupt; starting logged out.")
            self._storage.remove(TOKEN_KEY)
            self._storage.remove(USER_KEY)
            return None
        self._identity = identity
        self._token = token
        logger.info("Session restored user=%s org=%s role=%s", identity.email, identity.org_name, identity.role)
        return identity

    def _establish(self, payload: Payload) -> Identity:
        token = payload.get("token")
        if not isinstance(token, str) or not token.strip():
            raise ValidationError("The service did not return a session token.")
        identity = Identity.from_api(payload)

        self._storage.set(TOKEN_KEY, token)
        self._storage.set(USER_KEY, identity.to_json())
        self._identity = identity
        self._token = token
        logger.info("Signed in user=%s org=%s role=%s", identity.email, identity.org_name, identity.role)
        return identity

    async def login(self, email: str, password: str) -> Identity:
        _require(email=email, password=password)
        payload = await self._api.login(email=email.strip(), password=password)
        return self._establish(payload)

    async def register_and_create_org(self, name: str, email: str, password: str, org_name: str) -> Identity:
        """Create a new organization; the caller becomes its Admin."""
        _require(name=name, email=email, password=password, orgName=org_name)
        payload = await self._api.register(
            name=name.strip(), email=email.strip(), password=password, org_name=org_name.strip()
        )
        return self._establish(payload)

    async def join_existing_org(self, name: str, email: str, password: str, org_name: str) -> Identity:
        """Join an organization by its exact name; the caller becomes a Member."""
        _require(name=name, email=email, password=password, orgName=org_name)
        payload = await self._api.join_org(
            name=name.strip(), email=email.strip(), password=password, org_name=org_name.strip()
        )
        return self._establish(payload)

    def logout(self) -> None:
        self._storage.remove(TOKEN_KEY)
        self._storage.remove(USER_KEY)
        who = self._identity.email if self._identity else None
        self._identity = None
        self._token = None
        for hook in self._logout_hooks:
            hook()
        logger.info("Logged out user=%s", who)
