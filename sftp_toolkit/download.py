"""Chunked SFTP download engine.

Copies a remote file to local storage one chunk at a time over an SFTP
channel that the caller has already opened:

    remote open → local open → copy loop → remote close → local close

Every stage runs only if the previous one succeeded.  Whatever was opened is
closed again on every exit path, remote handle first.  The first failing stage
classifies the outcome; failures during the cleanup that follows are logged
and kept in :attr:`DownloadResult.secondary_errors` without replacing it.

Expected failures (open/read/write/close errors and timeouts) are returned,
never raised.  Only invalid options raise, and they do so before any file is
opened.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, BinaryIO, Callable

import paramiko

from sftp_toolkit.channel import (
    TRANSFER_ERRORS,
    LocalFilesystem,
    LocalPath,
    RemoteChannel,
    RemotePath,
    as_remote_channel,
)
from sftp_toolkit.errors import DownloadError, DownloadStage, error_for_stage
from sftp_toolkit.options import TransferOptions
from sftp_toolkit.utils.path_helpers import display_path, human_readable_size

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DownloadResult:
    """Outcome of one :func:`download_file` call.

    Attributes:
        error: The classified failure, or ``None`` on success.
        bytes_transferred: Bytes written to the local file.
        chunks: Number of chunks read and written.
        secondary_errors: Cleanup failures that happened after ``error``.
    """

    error: DownloadError | None = None
    bytes_transferred: int = 0
    chunks: int = 0
    secondary_errors: tuple[DownloadError, ...] = ()

    @property
    def ok(self) -> bool:
        """True if every stage succeeded."""
        return self.error is None

    @property
    def stage(self) -> DownloadStage | None:
        """The failing stage, or ``None`` on success."""
        return self.error.stage if self.error is not None else None

    @property
    def cause(self) -> BaseException | None:
        """The collaborator's original exception, or ``None`` on success."""
        return self.error.cause if self.error is not None else None

    def raise_for_error(self) -> None:
        """Raise :attr:`error` if the download failed."""
        if self.error is not None:
            raise self.error


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class _HandleState(Enum):
    """Lifecycle of one file handle within a single download."""

    NOT_OPENED = auto()
    OPEN = auto()
    CLOSED = auto()  # close attempted, whether or not it succeeded


class _Download:
    """State for a single :func:`download_file` call.

    Cleanup is driven by the two handle states, so every exit path releases
    exactly the handles that were opened and never touches one after its
    close was attempted.
    """

    def __init__(
        self,
        remote: RemoteChannel,
        local_fs: LocalFilesystem,
        remote_path: RemotePath,
        local_path: LocalPath,
        options: TransferOptions,
        on_progress: ProgressCallback | None,
    ) -> None:
        self._remote = remote
        self._local_fs = local_fs
        self._remote_path = remote_path
        self._local_path = local_path
        self._options = options
        self._on_progress = on_progress

        self._remote_handle: Any = None
        self._remote_state = _HandleState.NOT_OPENED
        self._local_handle: BinaryIO | None = None
        self._local_state = _HandleState.NOT_OPENED

        self._error: DownloadError | None = None
        self._secondary_errors: list[DownloadError] = []
        self._bytes_transferred = 0
        self._chunks = 0

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(self) -> DownloadResult:
        """Run every stage in order, then release whatever is still open."""
        for stage in (self._open_remote, self._open_local, self._copy):
            stage()
            if self._error is not None:
                break

        self._close_remote()
        self._close_local()

        return DownloadResult(
            error=self._error,
            bytes_transferred=self._bytes_transferred,
            chunks=self._chunks,
            secondary_errors=tuple(self._secondary_errors),
        )

    def _fail(self, stage: DownloadStage, exc: BaseException) -> None:
        """Record a failure; only the first one classifies the outcome."""
        error = error_for_stage(stage, exc)
        if self._error is None:
            self._error = error
            logger.warning(
                "Download %s → %s failed at %s: %s",
                display_path(self._remote_path),
                display_path(self._local_path),
                stage.value,
                exc,
            )
            return
        self._secondary_errors.append(error)
        logger.warning(
            "Cleanup %s also failed after %s failure: %s",
            stage.value,
            self._error.tag,
            exc,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _open_remote(self) -> None:
        try:
            self._remote_handle = self._remote.open(
                self._remote_path,
                self._options.remote_mode,
                self._options.operation_timeout,
            )
        except TRANSFER_ERRORS as exc:
            self._fail(DownloadStage.REMOTE_OPEN, exc)
            return
        self._remote_state = _HandleState.OPEN

    def _open_local(self) -> None:
        try:
            self._local_handle = self._local_fs.open(self._local_path, self._options.local_mode)
        except TRANSFER_ERRORS as exc:
            self._fail(DownloadStage.LOCAL_OPEN, exc)
            return
        self._local_state = _HandleState.OPEN

    def _copy(self) -> None:
        """Stream chunks until end of file or the first read/write failure.

        At most one chunk is held at a time.  Short reads are valid and are
        written in full before the next read.
        """
        chunk_size = self._options.chunk_size
        timeout = self._options.operation_timeout
        while True:
            try:
                chunk = self._remote.read(self._remote_handle, chunk_size, timeout)
            except TRANSFER_ERRORS as exc:
                self._fail(DownloadStage.READ, exc)
                return
            if not chunk:
                return

            try:
                self._local_fs.write(self._local_handle, chunk)
            except TRANSFER_ERRORS as exc:
                self._fail(DownloadStage.WRITE, exc)
                return

            self._bytes_transferred += len(chunk)
            self._chunks += 1
            logger.debug(
                "Chunk %d: %d bytes (%d total)",
                self._chunks,
                len(chunk),
                self._bytes_transferred,
            )
            self._report_progress()

    def _close_remote(self) -> None:
        if self._remote_state is not _HandleState.OPEN:
            return
        self._remote_state = _HandleState.CLOSED
        try:
            self._remote.close(self._remote_handle, self._options.operation_timeout)
        except TRANSFER_ERRORS as exc:
            self._fail(DownloadStage.REMOTE_CLOSE, exc)

    def _close_local(self) -> None:
        if self._local_state is not _HandleState.OPEN:
            return
        self._local_state = _HandleState.CLOSED
        try:
            self._local_fs.close(self._local_handle)
        except TRANSFER_ERRORS as exc:
            self._fail(DownloadStage.LOCAL_CLOSE, exc)

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def _report_progress(self) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(self._bytes_transferred)
        except Exception:
            logger.exception("Exception in on_progress callback")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def download_file(
    channel: RemoteChannel | paramiko.SFTPClient,
    remote_path: RemotePath,
    local_path: LocalPath,
    options: TransferOptions | Mapping[str, Any] | None = None,
    *,
    local_fs: LocalFilesystem | None = None,
    on_progress: ProgressCallback | None = None,
) -> DownloadResult:
    """Download *remote_path* to *local_path* in bounded-size chunks.

    Args:
        channel: An open ``paramiko.SFTPClient`` or any
            :class:`~sftp_toolkit.channel.RemoteChannel`.
        remote_path: Path on the server (``str`` or raw ``bytes``).
        local_path: Destination on the local filesystem.
        options: :class:`TransferOptions`, a mapping of option names (see
            :meth:`TransferOptions.from_mapping`), or ``None`` for defaults.
        local_fs: Local filesystem collaborator (defaults to the real one).
        on_progress: Called with the running byte count after each chunk.

    Returns:
        A :class:`DownloadResult`; check ``result.ok`` or call
        ``result.raise_for_error()``.  A failed download may leave a
        partially written local file behind.

    Raises:
        ValueError, TypeError: If *options* are malformed.
    """
    if options is None:
        options = TransferOptions()
    elif not isinstance(options, TransferOptions):
        options = TransferOptions.from_mapping(options)

    download = _Download(
        remote=as_remote_channel(channel),
        local_fs=local_fs or LocalFilesystem(),
        remote_path=remote_path,
        local_path=local_path,
        options=options,
        on_progress=on_progress,
    )
    result = download.run()

    if result.ok:
        logger.info(
            "Download complete: %s → %s (%s in %d chunk(s))",
            display_path(remote_path),
            display_path(local_path),
            human_readable_size(result.bytes_transferred),
            result.chunks,
        )
    return result
