"""Local persistence substrate: one isolated namespace per plug.

The substrate is a directory.  Each plug namespace is a single opaque
file ``<root>/<plug_id>.ns`` whose format belongs entirely to the plug;
the substrate only guarantees that every write replaces the whole file
atomically.  There is deliberately no API that reads across namespaces:
a plug can only ever reach the one ``NamespaceHandle`` it was given.

Usage
-----
::

    from orgzr.storage import Substrate

    substrate = Substrate(Path("~/.local/share/orgzr").expanduser())
    substrate.mount()
    handle = substrate.open("mealz")
    handle.write(b'{"cards": []}')
    handle.flush()
    substrate.close()
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from orgzr.errors import OrgzrError
from orgzr.storage.atomic import atomic_write_bytes, fsync_dir, fsync_file

logger = logging.getLogger(__name__)

NAMESPACE_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")


class StorageError(OrgzrError):
    """Raised when the substrate cannot read, write, or flush a namespace."""


class SubstrateClosedError(StorageError):
    """Raised when a handle is used after its substrate has been closed."""


class SubstrateLockedError(StorageError):
    """Raised when another live engine already owns the data directory."""

    def __init__(self, root: Path, owner_pid: int | None) -> None:
        self.root = root
        self.owner_pid = owner_pid
        owner = f"process {owner_pid}" if owner_pid is not None else "another engine"
        super().__init__(
            f"Data directory {str(root)!r} is in use by {owner}. "
            "Close the other engine before starting a new one."
        )


def _pid_alive(pid: int) -> bool:
    if os.name == "nt":
        # No safe liveness probe without extra dependencies; assume alive.
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class NamespaceHandle:
    """Exclusive access to one plug's persisted namespace.

    Handles are created only by :meth:`Substrate.open` and are bound to a
    single plug id for their whole life.

    Parameters
    ----------
    substrate:
        The owning substrate.
    plug_id:
        The namespace key.
    path:
        File backing this namespace.
    """

    def __init__(self, substrate: "Substrate", plug_id: str, path: Path) -> None:
        self._substrate = substrate
        self._plug_id = plug_id
        self._path = path
        self._dirty = False

    @property
    def plug_id(self) -> str:
        """The id of the plug that owns this namespace."""
        return self._plug_id

    @property
    def dirty(self) -> bool:
        """True if a write happened since the last :meth:`flush`."""
        return self._dirty

    def exists(self) -> bool:
        """Return True once the namespace has been written at least once."""
        self._substrate._check_open()
        return self._path.exists()

    def read(self) -> bytes:
        """Return the raw namespace content, or ``b""`` if never written.

        Raises
        ------
        StorageError
            If the backing file exists but cannot be read.
        """
        self._substrate._check_open()
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return b""
        except OSError as exc:
            raise StorageError(f"Cannot read namespace {self._plug_id!r}: {exc}") from exc

    def write(self, data: bytes) -> None:
        """Atomically replace the namespace content with ``data``.

        Raises
        ------
        StorageError
            If the replacement failed.  The previous content is intact.
        """
        self._substrate._check_open()
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError(f"Namespace data must be bytes, not {type(data).__name__}")
        try:
            atomic_write_bytes(self._path, bytes(data), fsync=self._substrate.fsync)
        except OSError as exc:
            raise StorageError(f"Cannot write namespace {self._plug_id!r}: {exc}") from exc
        self._dirty = True
        logger.debug("Wrote %d bytes to namespace %r", len(data), self._plug_id)

    def flush(self) -> None:
        """Force any written data to durable storage.

        Dirty namespaces are always synced here, even when the substrate
        was created with ``fsync=False``; that flag only skips the sync on
        each individual write.

        Raises
        ------
        StorageError
            If the data could not be synced.
        """
        self._substrate._check_open()
        if not self._dirty:
            return
        try:
            fsync_file(self._path)
            fsync_dir(self._path.parent)
        except OSError as exc:
            raise StorageError(f"Cannot flush namespace {self._plug_id!r}: {exc}") from exc
        self._dirty = False
        logger.debug("Flushed namespace %r", self._plug_id)

    def __repr__(self) -> str:
        return f"NamespaceHandle(plug_id={self._plug_id!r}, path={str(self._path)!r})"


class Substrate:
    """Directory-backed store of plug namespaces.

    Parameters
    ----------
    root:
        Directory holding the namespace files.  Created on mount.
    fsync:
        When ``True`` (default) every write is synced to disk.  Dirty
        namespaces are synced by :meth:`NamespaceHandle.flush` either way.
    lock:
        When ``True`` (default) mounting takes an exclusive lock file so a
        second engine cannot share the directory.
    """

    NAMESPACE_SUFFIX = ".ns"
    LOCK_NAME = ".orgzr.lock"

    def __init__(self, root: Path, *, fsync: bool = True, lock: bool = True) -> None:
        self._root = Path(root)
        self.fsync = fsync
        self._use_lock = lock
        self._handles: dict[str, NamespaceHandle] = {}
        self._mounted = False
        self._holds_lock = False

    @property
    def root(self) -> Path:
        """The data directory."""
        return self._root

    @property
    def mounted(self) -> bool:
        """True between :meth:`mount` and :meth:`close`."""
        return self._mounted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        """Create the data directory and take ownership of it.

        Calling ``mount`` on an already mounted substrate is a no-op.

        Raises
        ------
        SubstrateLockedError
            If another live engine holds the directory.
        StorageError
            If the directory cannot be created.
        """
        if self._mounted:
            return
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create data directory {str(self._root)!r}: {exc}") from exc
        if self._use_lock:
            self._acquire_lock()
        self._mounted = True
        logger.info("Mounted substrate at %s", self._root)

    def close(self) -> None:
        """Release the directory.  Handles become unusable afterwards."""
        if not self._mounted:
            return
        self._mounted = False
        self._handles.clear()
        if self._holds_lock:
            self._release_lock()
        logger.info("Closed substrate at %s", self._root)

    def __enter__(self) -> "Substrate":
        self.mount()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def open(self, plug_id: str) -> NamespaceHandle:
        """Return the handle for ``plug_id``'s namespace.

        Idempotent: repeated calls return the same handle object.  The
        backing file is created lazily on the first write.

        Raises
        ------
        StorageError
            If ``plug_id`` is not a valid namespace key.
        SubstrateClosedError
            If the substrate is not mounted.
        """
        self._check_open()
        handle = self._handles.get(plug_id)
        if handle is not None:
            return handle
        if not NAMESPACE_ID_PATTERN.match(plug_id):
            raise StorageError(
                f"Invalid namespace id {plug_id!r}: "
                f"must match {NAMESPACE_ID_PATTERN.pattern}"
            )
        handle = NamespaceHandle(self, plug_id, self._root / f"{plug_id}{self.NAMESPACE_SUFFIX}")
        self._handles[plug_id] = handle
        logger.debug("Opened namespace %r", plug_id)
        return handle

    def _check_open(self) -> None:
        if not self._mounted:
            raise SubstrateClosedError(f"Substrate at {str(self._root)!r} is not mounted")

    # ------------------------------------------------------------------
    # Lock file
    # ------------------------------------------------------------------

    @property
    def _lock_path(self) -> Path:
        return self._root / self.LOCK_NAME

    def _acquire_lock(self) -> None:
        for _ in range(2):
            try:
                fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                owner = self._read_lock_owner()
                if owner is not None and owner != os.getpid() and not _pid_alive(owner):
                    logger.warning("Reclaiming stale lock held by dead process %d", owner)
                    self._lock_path.unlink(missing_ok=True)
                    continue
                raise SubstrateLockedError(self._root, owner) from None
            except OSError as exc:
                raise StorageError(f"Cannot create lock file in {str(self._root)!r}: {exc}") from exc
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(str(os.getpid()))
            self._holds_lock = True
            return
        raise SubstrateLockedError(self._root, self._read_lock_owner())

    def _read_lock_owner(self) -> int | None:
        try:
            return int(self._lock_path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def _release_lock(self) -> None:
        try:
            self._lock_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove lock file %s: %s", self._lock_path, exc)
        self._holds_lock = False

    def __repr__(self) -> str:
        return f"Substrate(root={str(self._root)!r}, mounted={self._mounted})"
