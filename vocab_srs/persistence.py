"""
Persistence gateways for SRS snapshots.

A gateway stores one opaque string per namespace ("cards", "sessions"). Three
backends are provided: in-memory (the default), a directory of JSON files and
a SQL table through SQLAlchemy. Writes go through SnapshotWriter, which bounds
each call by a timeout, keeps failed snapshots pending until the next flush
and holds back namespaces whose saved snapshot could not be loaded.
"""

import logging
import os
import tempfile
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Set, Union

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from vocab_srs.constants import PERSISTENCE_TIMEOUT_SECONDS
from vocab_srs.db_engine import create_db_engine, session_scope
from vocab_srs.exceptions import PersistenceError
from vocab_srs.orm_models import Base, SnapshotORM

logger = logging.getLogger(__name__)


class PersistenceGateway(Protocol):

    def save(self, namespace: str, blob: str) -> None:
        ...

    def load(self, namespace: str) -> Optional[str]:
        ...


class InMemoryGateway:
    """Keeps snapshots in a dict. Useful for tests and ephemeral engines."""

    def __init__(self):
        self._blobs: Dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, namespace: str, blob: str) -> None:
        with self._lock:
            self._blobs[namespace] = blob

    def load(self, namespace: str) -> Optional[str]:
        with self._lock:
            return self._blobs.get(namespace)


class JsonFileGateway:
    """Stores each namespace as <directory>/<namespace>.json.

    Files are written to a temporary file first and moved into place, so a
    crash mid-write never leaves a truncated snapshot behind.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, namespace: str) -> Path:
        return self.directory / f"{namespace}.json"

    def save(self, namespace: str, blob: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
            os.replace(tmp_name, self._path(namespace))
        except OSError as e:
            raise PersistenceError(f"Could not save {namespace!r} to {self.directory}: {e}") from e

    def load(self, namespace: str) -> Optional[str]:
        path = self._path(namespace)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Could not load {namespace!r} from {path}: {e}") from e


class SqlAlchemyGateway:
    """Stores snapshots in the `snapshots` table of any SQLAlchemy database."""

    def __init__(self, engine: Optional[Engine] = None, url: Optional[str] = None):
        self.engine = engine if engine is not None else create_db_engine(url)
        self._session_factory = sessionmaker(bind=self.engine)

    def init_db(self):
        """Initialize the database schema."""
        Base.metadata.create_all(self.engine)

    def save(self, namespace: str, blob: str) -> None:
        try:
            with session_scope(self._session_factory) as session:
                orm = session.get(SnapshotORM, namespace)
                if orm is None:
                    orm = SnapshotORM(namespace=namespace, blob=blob)
                    session.add(orm)
                orm.blob = blob
                orm.updated_at = int(time.time())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save {namespace!r}: {e}") from e

    def load(self, namespace: str) -> Optional[str]:
        try:
            with session_scope(self._session_factory) as session:
                orm = session.get(SnapshotORM, namespace)
                return orm.blob if orm is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load {namespace!r}: {e}") from e

    def dispose(self):
        self.engine.dispose()


class SnapshotWriter:
    """
    Runs gateway calls on a single worker thread with a timeout.

    A snapshot that could not be written stays pending and is written again on
    the next flush of any namespace, so the store on disk catches up with the
    in-memory state eventually.

    A namespace whose snapshot could not be loaded is held: its snapshots stay
    pending and are never written until a later restore of it succeeds, so a
    failed load can not turn into an overwrite of the stored state.

    At most one gateway call is outstanding. While a timed-out call is still
    running on the worker, new calls fail instead of queueing behind it.
    """

    def __init__(self, gateway: PersistenceGateway, timeout: float = PERSISTENCE_TIMEOUT_SECONDS):
        self.gateway = gateway
        self.timeout = timeout
        self._pending: Dict[str, str] = {}
        self._held: Set[str] = set()
        self._in_flight: Optional[Future] = None
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="srs-persistence")

    @property
    def pending_namespaces(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    @property
    def held_namespaces(self) -> list[str]:
        with self._lock:
            return sorted(self._held)

    def is_held(self, namespace: str) -> bool:
        with self._lock:
            return namespace in self._held

    def flush(self, namespace: str, blob: str) -> bool:
        """Write the snapshot, plus any left pending by earlier failures.

        Returns True when nothing is left pending.
        """
        with self._lock:
            self._pending[namespace] = blob
            for pending_namespace, pending_blob in list(self._pending.items()):
                if pending_namespace in self._held:
                    logger.warning(
                        "Holding back %s snapshot until the saved one has been loaded",
                        pending_namespace,
                    )
                    continue
                if pending_namespace != namespace:
                    logger.info("Retrying pending %s snapshot", pending_namespace)
                if self._save(pending_namespace, pending_blob):
                    del self._pending[pending_namespace]
            return not self._pending

    def load(self, namespace: str) -> Optional[str]:
        """Load a snapshot, returning None if it is missing or unreadable."""
        try:
            return self._call(self.gateway.load, namespace)
        except PersistenceError as e:
            logger.error("Failed to load %s snapshot: %s", namespace, e)
            return None

    def restore(self, namespace: str, apply: Callable[[str], None]) -> bool:
        """Load a snapshot and hand it to `apply`.

        A missing snapshot is an empty one. If the load fails, or `apply`
        raises PersistenceError because the snapshot can not be decoded, the
        namespace is held and False is returned.
        """
        try:
            blob = self._call(self.gateway.load, namespace)
            if blob is not None:
                apply(blob)
        except PersistenceError as e:
            logger.error("Failed to load %s snapshot, holding back saves: %s", namespace, e)
            with self._lock:
                self._held.add(namespace)
            return False

        with self._lock:
            if namespace in self._held:
                logger.info("Loaded %s snapshot, saves resume", namespace)
                self._held.discard(namespace)
        return True

    def close(self):
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _save(self, namespace: str, blob: str) -> bool:
        try:
            self._call(self.gateway.save, namespace, blob)
            return True
        except PersistenceError as e:
            logger.warning("Failed to save %s snapshot, will retry on next change: %s", namespace, e)
            return False

    def _call(self, fn: Callable, *args):
        """Run one gateway call on the worker, bounded by the timeout.

        Timeouts and gateway errors are raised as PersistenceError.
        """
        with self._lock:
            previous = self._in_flight
            if previous is not None and not previous.done():
                # A call that timed out earlier gets one more timeout to finish
                try:
                    previous.exception(timeout=self.timeout)
                except (FutureTimeoutError, CancelledError):
                    pass
                if not previous.done():
                    raise PersistenceError(
                        f"An earlier call is still running after {self.timeout:.1f}s"
                    )
            future = self._executor.submit(fn, *args)
            self._in_flight = future

        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            raise PersistenceError(f"Timed out after {self.timeout:.1f}s") from None
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(str(e)) from e
