"""Transfer options for the chunked download engine.

Open modes are an enumerated capability set (:class:`OpenMode`) validated when
:class:`TransferOptions` is constructed, so a malformed configuration fails
before any remote or local file is touched.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Flag, auto
from collections.abc import Iterable, Mapping
from typing import Any, Union

# ---------------------------------------------------------------------------
# Open modes
# ---------------------------------------------------------------------------

# Short spellings used by the SFTP open flags (SSH_FXF_CREAT / SSH_FXF_TRUNC).
_MODE_ALIASES = {
    "creat": "create",
    "trunc": "truncate",
}


class OpenMode(Flag):
    """Capabilities requested when opening a remote or local file."""

    READ = auto()
    WRITE = auto()
    CREATE = auto()
    TRUNCATE = auto()
    APPEND = auto()
    BINARY = auto()

    @classmethod
    def parse(cls, value: ModeLike) -> OpenMode:
        """Build an :class:`OpenMode` from a flag, a flag name, or names.

        Names are case-insensitive; ``creat`` and ``trunc`` are accepted as
        aliases.

        Raises:
            ValueError: If a name does not match any flag.
            TypeError: If *value* is not a flag, string, or iterable.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, Iterable):
            raise TypeError(f"Open mode must be an OpenMode or flag names, not {value!r}")

        mode = cls(0)
        for item in value:
            if isinstance(item, cls):
                mode |= item
                continue
            key = str(item).strip().lower()
            key = _MODE_ALIASES.get(key, key)
            try:
                mode |= cls[key.upper()]
            except KeyError:
                raise ValueError(f"Unknown open mode flag: {item!r}") from None
        return mode

    def names(self) -> list[str]:
        """Return the lower-case flag names in declaration order (JSON friendly)."""
        return [member.name.lower() for member in type(self) if member in self]

    def to_mode_string(self) -> str:
        """Translate the capability set into an ``open()`` mode string.

        The same string is understood by the builtin :func:`open` and by
        :meth:`paramiko.SFTPClient.open`.

        Raises:
            ValueError: For combinations neither side can express.
        """
        read = OpenMode.READ in self
        if OpenMode.APPEND in self:
            if OpenMode.TRUNCATE in self:
                raise ValueError(f"APPEND and TRUNCATE cannot be combined: {self!r}")
            base = "a+" if read else "a"
        elif OpenMode.WRITE in self:
            if not read:
                base = "w"
            elif OpenMode.TRUNCATE in self:
                base = "w+"
            elif OpenMode.CREATE in self:
                raise ValueError(
                    f"READ|WRITE|CREATE needs TRUNCATE or APPEND to be opened: {self!r}"
                )
            else:
                base = "r+"
        elif self & ~OpenMode.BINARY == OpenMode.READ:
            base = "r"
        else:
            raise ValueError(f"Unsupported open mode: {self!r}")

        return base + "b" if OpenMode.BINARY in self else base


ModeLike = Union[OpenMode, str, Iterable[Union[str, OpenMode]]]

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_OPERATION_TIMEOUT = 5.0  # seconds, per remote operation
DEFAULT_CHUNK_SIZE = 32 * 1024  # 32 KB per read/write call
DEFAULT_REMOTE_MODE = OpenMode.READ | OpenMode.BINARY
DEFAULT_LOCAL_MODE = OpenMode.WRITE | OpenMode.BINARY

# ---------------------------------------------------------------------------
# TransferOptions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferOptions:
    """Immutable per-call configuration for :func:`sftp_toolkit.download.download_file`.

    Attributes:
        operation_timeout: Seconds allowed for each remote open, read and
            close.  It bounds a single operation, never the whole transfer.
            ``None`` waits indefinitely.
        chunk_size: Maximum bytes requested per read; also the peak amount
            of file data held in memory.
        remote_mode: Capabilities used to open the remote file.
        local_mode: Capabilities used to open the local file.
    """

    operation_timeout: float | None = DEFAULT_OPERATION_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    remote_mode: OpenMode = DEFAULT_REMOTE_MODE
    local_mode: OpenMode = DEFAULT_LOCAL_MODE

    def __post_init__(self) -> None:
        """Normalise mode names to flags and validate every field."""
        object.__setattr__(self, "remote_mode", OpenMode.parse(self.remote_mode))
        object.__setattr__(self, "local_mode", OpenMode.parse(self.local_mode))

        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, int):
            raise TypeError(f"chunk_size must be an int, not {self.chunk_size!r}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        timeout = self.operation_timeout
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
                raise TypeError(f"operation_timeout must be a number or None, not {timeout!r}")
            if timeout <= 0:
                raise ValueError(f"operation_timeout must be positive, got {timeout}")

        # Both raise ValueError for unsupported combinations.
        self.remote_mode.to_mode_string()
        self.local_mode.to_mode_string()

        if OpenMode.READ not in self.remote_mode:
            raise ValueError(f"remote_mode must include READ: {self.remote_mode!r}")
        if OpenMode.BINARY not in self.local_mode:
            raise ValueError(f"local_mode must include BINARY: {self.local_mode!r}")
        if not self.local_mode & (OpenMode.WRITE | OpenMode.APPEND):
            raise ValueError(f"local_mode must include WRITE or APPEND: {self.local_mode!r}")

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> TransferOptions:
        """Build options from a plain mapping such as parsed JSON.

        Keys with a ``None`` value are treated as unspecified and fall back to
        their defaults independently.  ``operation_timeout_ms`` is accepted as
        a millisecond spelling of ``operation_timeout``.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known - {"operation_timeout_ms"}
        if unknown:
            raise ValueError(f"Unknown transfer option(s): {', '.join(sorted(unknown))}")

        kwargs: dict[str, Any] = {
            key: value for key, value in values.items() if key in known and value is not None
        }
        timeout_ms = values.get("operation_timeout_ms")
        if timeout_ms is not None and "operation_timeout" not in kwargs:
            if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
                raise TypeError(f"operation_timeout_ms must be a number, not {timeout_ms!r}")
            kwargs["operation_timeout"] = timeout_ms / 1000.0
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""
        data = asdict(self)
        data["remote_mode"] = self.remote_mode.names()
        data["local_mode"] = self.local_mode.names()
        return data
