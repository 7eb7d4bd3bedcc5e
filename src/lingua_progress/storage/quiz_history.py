"""Quiz attempt history persistence (append-only, one file per learner)."""

import asyncio
import fcntl
import json
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from lingua_progress.errors import StoreError
from lingua_progress.models.activity import QuizAttempt
from lingua_progress.storage.user_profile import validate_user_id


class QuizHistoryStore:
    """Stores every quiz attempt a learner submits.

    Attempts are immutable; appending an attempt whose id is already present
    is a no-op, which keeps retried or duplicate submissions from creating a
    second record.

    Args:
        history_dir: Directory holding ``<user_id>.json`` history files.
    """

    def __init__(self, history_dir: Path):
        self.history_dir = history_dir
        self.history_dir.mkdir(parents=True, exist_ok=True)

    def _history_path(self, user_id: str) -> Path:
        return self.history_dir / f"{validate_user_id(user_id)}.json"

    def _load_raw(self, history_path: Path) -> dict:
        if not history_path.exists():
            return {"attempts": []}
        try:
            return json.loads(history_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read quiz history {history_path.name}: {e}") from e

    def read_sync(self, user_id: str) -> list[QuizAttempt]:
        """Read a learner's attempts, oldest first. Returns [] if none recorded."""
        data = self._load_raw(self._history_path(user_id))
        try:
            return [QuizAttempt(**entry) for entry in data.get("attempts", [])]
        except ValidationError as e:
            raise StoreError(f"Corrupt quiz history for {user_id}: {e}") from e

    def append_sync(self, user_id: str, attempt: QuizAttempt) -> bool:
        """Append an attempt. Returns False if its id was already stored."""
        history_path = self._history_path(user_id)

        lock_path = self.history_dir / f".{user_id}.lock"
        try:
            with open(lock_path, "w") as lock_file:
                fcntl.flock(lock_file, fcntl.LOCK_EX)

                data = self._load_raw(history_path)
                if any(
                    entry.get("attempt_id") == attempt.attempt_id
                    for entry in data["attempts"]
                ):
                    return False

                data["attempts"].append(attempt.model_dump(mode="json"))
                with tempfile.NamedTemporaryFile(
                    "w", dir=self.history_dir, delete=False, prefix=".tmp-", suffix=".part"
                ) as tmp:
                    json.dump(data, tmp, indent=2)
                os.replace(tmp.name, history_path)
        except OSError as e:
            raise StoreError(f"Failed to append quiz attempt for {user_id}: {e}") from e
        return True

    async def read(self, user_id: str) -> list[QuizAttempt]:
        return await asyncio.to_thread(self.read_sync, user_id)

    async def append(self, user_id: str, attempt: QuizAttempt) -> bool:
        return await asyncio.to_thread(self.append_sync, user_id, attempt)
