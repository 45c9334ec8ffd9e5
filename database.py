import contextlib
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from errors import StoreUnavailableError
from schemas import Snapshot, Task, User

logger = logging.getLogger(__name__)

# This file holds the in-memory database and everything that keeps it on disk.
# The whole database is written out as one JSON snapshot after every change,
# so it is only meant for data sets small enough to rewrite on each request.


class Database:
    """Tasks and users, each keyed by the record's own id."""

    def __init__(
        self,
        tasks: Optional[Dict[int, Task]] = None,
        users: Optional[Dict[int, User]] = None,
    ):
        self.tasks: Dict[int, Task] = dict(tasks or {})
        self.users: Dict[int, User] = dict(users or {})

    # --- Tasks ---

    def insert_task(self, task: Task) -> None:
        # The key always comes from the record, never from the caller
        self.tasks[task.id] = task

    def get_task(self, task_id: int) -> Optional[Task]:
        return self.tasks.get(task_id)

    def get_all_tasks(self) -> List[Task]:
        # Callers must not rely on the order
        return list(self.tasks.values())

    def delete_task(self, task_id: int) -> None:
        self.tasks.pop(task_id, None)

    def update_task(self, task: Task) -> None:
        # Same as insert: an unknown id creates the task
        self.insert_task(task)

    # --- Users ---

    def insert_user(self, user: User) -> None:
        # Usernames are not checked for duplicates
        self.users[user.id] = user

    def find_user_by_username(self, username: str) -> Optional[User]:
        # With duplicate usernames the first one in the mapping wins
        return next(
            (user for user in self.users.values() if user.username == username),
            None,
        )

    # --- Snapshots ---

    def to_snapshot(self) -> Snapshot:
        return Snapshot(tasks=dict(self.tasks), users=dict(self.users))

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "Database":
        return cls(tasks=snapshot.tasks, users=snapshot.users)


class SnapshotFile:
    """Saves and restores a whole Database as a single JSON file."""

    def __init__(self, path: Union[str, Path] = "database.json"):
        self.path = Path(path)

    def save(self, db: Database) -> bool:
        """Rewrite the snapshot. Returns False instead of raising on failure."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            data = db.to_snapshot().model_dump_json()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.write(data)
            # Readers never see a half-written snapshot
            os.replace(tmp, self.path)
        except (OSError, ValueError):
            logger.error(
                "Failed to save database snapshot to %s; keeping in-memory state",
                self.path,
                exc_info=True,
                extra={"database_path": str(self.path)},
            )
            with contextlib.suppress(OSError):
                tmp.unlink()
            return False
        logger.debug(
            "Saved snapshot with %d tasks and %d users",
            len(db.tasks),
            len(db.users),
        )
        return True

    def load(self) -> Optional[Database]:
        """Read the snapshot back. None means missing or unreadable."""
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            logger.info("No database snapshot at %s", self.path)
            return None
        except OSError:
            logger.warning("Could not read database snapshot %s", self.path, exc_info=True)
            return None

        try:
            snapshot = Snapshot.model_validate_json(raw)
        except ValueError as exc:
            # Covers broken JSON as well as records of the wrong shape
            logger.warning("Ignoring malformed database snapshot %s: %s", self.path, exc)
            return None
        return Database.from_snapshot(snapshot)


class LockedDatabase:
    """
    One lock around the whole Database.

    Every access, read or write, holds the lock for its full duration.
    Writes also save the snapshot before the lock is released, so the file
    is only ever touched by one thread at a time.

    If lock_timeout is set and the lock is not free in time, the request
    fails with StoreUnavailableError instead of waiting forever. An exception
    raised inside a block releases the lock and propagates to the caller; the
    process keeps running.
    """

    def __init__(
        self,
        db: Database,
        snapshot_file: SnapshotFile,
        lock_timeout: Optional[float] = None,
    ):
        self._db = db
        self._lock = threading.Lock()
        self.snapshot_file = snapshot_file
        self.lock_timeout = lock_timeout

    @contextmanager
    def _locked(self) -> Iterator[Database]:
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not self._lock.acquire(timeout=timeout):
            logger.error("Timed out after %ss waiting for the database lock", self.lock_timeout)
            raise StoreUnavailableError(self.lock_timeout)
        try:
            yield self._db
        finally:
            self._lock.release()

    @contextmanager
    def read(self) -> Iterator[Database]:
        with self._locked() as db:
            yield db

    @contextmanager
    def write(self) -> Iterator[Database]:
        with self._locked() as db:
            yield db
            # Only reached when the block finished without raising
            self.snapshot_file.save(db)


def open_database(
    path: Union[str, Path] = "database.json",
    lock_timeout: Optional[float] = None,
) -> LockedDatabase:
    """Restore the last snapshot, or start empty, and put it behind the lock."""
    snapshot_file = SnapshotFile(path)
    db = snapshot_file.load()
    if db is None:
        logger.info("Starting with an empty database")
        db = Database()
    else:
        logger.info(
            "Loaded %d tasks and %d users from %s",
            len(db.tasks),
            len(db.users),
            snapshot_file.path,
        )
    return LockedDatabase(db, snapshot_file, lock_timeout=lock_timeout)
