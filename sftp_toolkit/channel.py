"""Remote and local file collaborators used by the download engine.

The engine never talks to paramiko or the filesystem directly; it drives a
:class:`RemoteChannel` and a :class:`LocalFilesystem`.  :class:`SFTPChannel`
is the production remote channel, wrapping an already-open
``paramiko.SFTPClient`` and applying a per-operation timeout to each call.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, BinaryIO, Protocol, Union

import paramiko

from sftp_toolkit.options import OpenMode
from sftp_toolkit.utils.path_helpers import display_path

logger = logging.getLogger(__name__)

RemotePath = Union[str, bytes]
LocalPath = Union[str, bytes, os.PathLike]

# Exceptions the collaborators raise for expected failures.  socket.timeout is
# an OSError subclass; paramiko raises EOFError once the channel has gone away.
TRANSFER_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    EOFError,
    paramiko.SSHException,
)

# ---------------------------------------------------------------------------
# Remote side
# ---------------------------------------------------------------------------


class RemoteChannel(Protocol):
    """Remote file operations issued over an open SFTP channel.

    ``timeout`` is in seconds and bounds that single call; ``None`` means no
    limit.  ``read`` returns ``b""`` once the end of the file is reached.
    """

    def open(self, path: RemotePath, mode: OpenMode, timeout: float | None) -> Any:
        ...

    def read(self, handle: Any, size: int, timeout: float | None) -> bytes:
        ...

    def close(self, handle: Any, timeout: float | None) -> None:
        ...


class SFTPChannel:
    """:class:`RemoteChannel` backed by a ``paramiko.SFTPClient``.

    Each operation runs with its own timeout on the underlying
    ``paramiko.Channel``, so a stalled request/response round-trip raises
    ``socket.timeout``.  The caller's previous channel timeout is put back
    once the operation returns.

    paramiko reports both a genuine end of file and a torn-down channel as
    ``EOFError``, and swallows it inside ``SFTPFile.read``/``close``.  After
    an empty read or a close the channel is checked, and a dead channel is
    raised as ``EOFError`` so it is not mistaken for success.
    """

    def __init__(self, sftp: paramiko.SFTPClient) -> None:
        """Wrap *sftp* (already connected; this class never opens sessions)."""
        self._sftp = sftp

    @property
    def sftp(self) -> paramiko.SFTPClient:
        """The wrapped SFTP client."""
        return self._sftp

    @contextmanager
    def _operation_timeout(self, timeout: float | None) -> Iterator[None]:
        """Apply *timeout* to the SSH channel for one operation."""
        channel = self._sftp.get_channel()
        if channel is None:
            yield
            return
        previous = channel.gettimeout()
        channel.settimeout(timeout)
        try:
            yield
        finally:
            channel.settimeout(previous)

    def _ensure_channel_open(self) -> None:
        """Raise ``EOFError`` if the SFTP channel has gone away."""
        channel = self._sftp.get_channel()
        if channel is None or channel.closed or channel.eof_received:
            raise EOFError("SFTP channel closed")

    def open(self, path: RemotePath, mode: OpenMode, timeout: float | None) -> paramiko.SFTPFile:
        """Open *path* on the server with *mode*."""
        mode_string = mode.to_mode_string()
        logger.debug("sftp open(%s, %r)", display_path(path), mode_string)
        with self._operation_timeout(timeout):
            return self._sftp.open(path, mode_string)

    def read(self, handle: paramiko.SFTPFile, size: int, timeout: float | None) -> bytes:
        """Read up to *size* bytes from *handle*; ``b""`` at end of file.

        Raises:
            EOFError: If the read came back empty because the channel closed.
        """
        with self._operation_timeout(timeout):
            data = handle.read(size)
        if not data:
            self._ensure_channel_open()
        return data

    def close(self, handle: paramiko.SFTPFile, timeout: float | None) -> None:
        """Close *handle* on the server.

        Raises:
            EOFError: If the channel was torn down by the time of the close.
        """
        with self._operation_timeout(timeout):
            handle.close()
        self._ensure_channel_open()


def as_remote_channel(channel: Any) -> RemoteChannel:
    """Wrap a ``paramiko.SFTPClient`` in :class:`SFTPChannel`; pass others through."""
    if isinstance(channel, paramiko.SFTPClient):
        return SFTPChannel(channel)
    return channel


# ---------------------------------------------------------------------------
# Local side
# ---------------------------------------------------------------------------


class LocalFilesystem:
    """Local file operations used for the destination file."""

    def open(self, path: LocalPath, mode: OpenMode) -> BinaryIO:
        """Open *path* with the builtin :func:`open` using *mode*."""
        return open(path, mode.to_mode_string())

    def write(self, handle: BinaryIO, data: bytes) -> None:
        """Write *data* in full (buffered writers write everything or raise)."""
        handle.write(data)

    def close(self, handle: BinaryIO) -> None:
        """Close *handle*; buffered data is flushed here, so ENOSPC can surface."""
        handle.close()
