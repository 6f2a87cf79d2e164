"""Failure taxonomy for the chunked download engine.

Each class names the pipeline stage that failed and carries the collaborator's
original exception untouched in :attr:`DownloadError.cause`.  Instances are
*returned* inside a :class:`~sftp_toolkit.download.DownloadResult`; they are
only raised when the caller asks for it via ``raise_for_error()``.
"""

from __future__ import annotations

from enum import Enum


class DownloadStage(Enum):
    """Pipeline stages, in execution order.  Values are the stage tags."""

    REMOTE_OPEN = "remote_open"
    LOCAL_OPEN = "local_open"
    READ = "download.read"
    WRITE = "download.write"
    REMOTE_CLOSE = "remote_close"
    LOCAL_CLOSE = "local_close"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DownloadError(Exception):
    """Base class for a classified download failure.

    Attributes:
        stage: The :class:`DownloadStage` that failed.
        cause: The exception raised by the remote channel or local filesystem.
    """

    stage: DownloadStage

    def __init__(self, cause: BaseException) -> None:
        """Wrap *cause*, keeping it as both ``cause`` and ``__cause__``."""
        super().__init__(f"{self.stage.value} failed: {cause}")
        self.cause = cause
        self.__cause__ = cause

    @property
    def tag(self) -> str:
        """The stage tag, e.g. ``"download.read"``."""
        return self.stage.value


class RemoteOpenFailed(DownloadError):
    """Opening the remote file on the SFTP channel failed."""

    stage = DownloadStage.REMOTE_OPEN


class LocalOpenFailed(DownloadError):
    """Opening the local destination file failed."""

    stage = DownloadStage.LOCAL_OPEN


class ReadFailed(DownloadError):
    """Reading a chunk from the remote file failed."""

    stage = DownloadStage.READ


class WriteFailed(DownloadError):
    """Writing a chunk to the local file failed."""

    stage = DownloadStage.WRITE


class RemoteCloseFailed(DownloadError):
    """Closing the remote file handle failed."""

    stage = DownloadStage.REMOTE_CLOSE


class LocalCloseFailed(DownloadError):
    """Closing (and flushing) the local file failed."""

    stage = DownloadStage.LOCAL_CLOSE


_ERRORS_BY_STAGE: dict[DownloadStage, type[DownloadError]] = {
    cls.stage: cls
    for cls in (
        RemoteOpenFailed,
        LocalOpenFailed,
        ReadFailed,
        WriteFailed,
        RemoteCloseFailed,
        LocalCloseFailed,
    )
}


def error_for_stage(stage: DownloadStage, cause: BaseException) -> DownloadError:
    """Return the :class:`DownloadError` subclass instance for *stage*."""
    return _ERRORS_BY_STAGE[stage](cause)
