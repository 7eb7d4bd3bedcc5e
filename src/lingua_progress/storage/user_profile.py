"""User profile persistence (JSON + fcntl.flock + atomic write + version check)."""

import asyncio
import fcntl
import json
import os
import re
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Protocol

import structlog
from pydantic import ValidationError

from lingua_progress.errors import (
    ProfileExistsError,
    ProfileNotFoundError,
    StoreError,
    VersionConflictError,
)
from lingua_progress.models.user_profile import UserProfile

logger = structlog.get_logger()

USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_user_id(user_id: str) -> str:
    if not USER_ID_PATTERN.match(user_id):
        raise ValueError(f"Invalid user ID: {user_id!r}")
    return user_id


class ProfileStore(Protocol):
    """Adapter the progress engine uses to read and write profiles."""

    async def load_profile(self, user_id: str) -> UserProfile: ...

    async def save_profile(self, profile: UserProfile, expected_version: int) -> UserProfile: ...

    async def list_profiles(self) -> list[UserProfile]: ...


@contextmanager
def _locked(lock_path: Path, mode: int) -> Iterator[None]:
    with open(lock_path, "a") as lock_file:
        fcntl.flock(lock_file, mode)
        try:
            yield
        finally:
            fcntl.flock(lock_file, fcntl.LOCK_UN)


def _atomic_write(path: Path, payload: dict) -> None:
    with tempfile.NamedTemporaryFile(
        "w", dir=path.parent, delete=False, prefix=".tmp-", suffix=".part", encoding="utf-8"
    ) as tmp:
        json.dump(payload, tmp)
    os.replace(tmp.name, path)


class JsonProfileStore:
    """One JSON document per learner under ``profiles_dir``.

    Every successful save bumps ``UserProfile.version``; a save whose
    expected version no longer matches the file raises VersionConflictError.

    Args:
        profiles_dir: Directory holding ``<user_id>.json`` files.
    """

    def __init__(self, profiles_dir: Path):
        self.profiles_dir = profiles_dir
        self.profiles_dir.mkdir(parents=True, exist_ok=True)

    def get_profile_path(self, user_id: str) -> Path:
        return self.profiles_dir / f"{validate_user_id(user_id)}.json"

    def _lock_path(self, user_id: str) -> Path:
        return self.profiles_dir / f".{validate_user_id(user_id)}.lock"

    def _read(self, path: Path) -> UserProfile:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return UserProfile(**data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StoreError(f"Failed to read profile {path.name}: {e}") from e

    def load_profile_sync(self, user_id: str) -> UserProfile:
        path = self.get_profile_path(user_id)
        with _locked(self._lock_path(user_id), fcntl.LOCK_SH):
            if not path.exists():
                raise ProfileNotFoundError(user_id)
            return self._read(path)

    def save_profile_sync(self, profile: UserProfile, expected_version: int) -> UserProfile:
        path = self.get_profile_path(profile.user_id)
        with _locked(self._lock_path(profile.user_id), fcntl.LOCK_EX):
            if not path.exists():
                raise ProfileNotFoundError(profile.user_id)
            current = self._read(path)
            if current.version != expected_version:
                raise VersionConflictError(profile.user_id, expected_version, current.version)
            saved = profile.model_copy(
                update={
                    "version": current.version + 1,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            try:
                _atomic_write(path, saved.model_dump(mode="json"))
            except OSError as e:
                raise StoreError(f"Failed to write profile {path.name}: {e}") from e
        return saved

    def create_profile_sync(self, user_id: str, name: str = "") -> UserProfile:
        path = self.get_profile_path(user_id)
        with _locked(self._lock_path(user_id), fcntl.LOCK_EX):
            if path.exists():
                raise ProfileExistsError(user_id)
            profile = UserProfile(user_id=user_id, name=name)
            try:
                _atomic_write(path, profile.model_dump(mode="json"))
            except OSError as e:
                raise StoreError(f"Failed to create profile {path.name}: {e}") from e
        logger.info("profile_created", user_id=user_id)
        return profile

    def list_profiles_sync(self) -> list[UserProfile]:
        profiles = []
        try:
            paths = sorted(self.profiles_dir.glob("*.json"))
        except OSError as e:
            raise StoreError(f"Failed to list profiles: {e}") from e
        for path in paths:
            try:
                profiles.append(self._read(path))
            except StoreError:
                logger.warning("profile_parse_error", path=str(path))
        return profiles

    async def load_profile(self, user_id: str) -> UserProfile:
        return await asyncio.to_thread(self.load_profile_sync, user_id)

    async def save_profile(self, profile: UserProfile, expected_version: int) -> UserProfile:
        return await asyncio.to_thread(self.save_profile_sync, profile, expected_version)

    async def create_profile(self, user_id: str, name: str = "") -> UserProfile:
        return await asyncio.to_thread(self.create_profile_sync, user_id, name)

    async def list_profiles(self) -> list[UserProfile]:
        return await asyncio.to_thread(self.list_profiles_sync)
