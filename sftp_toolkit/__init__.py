"""sftp_toolkit: bounded-memory SFTP downloads over an existing channel."""

from sftp_toolkit.download import DownloadResult, download_file
from sftp_toolkit.errors import (
    DownloadError,
    DownloadStage,
    LocalCloseFailed,
    LocalOpenFailed,
    ReadFailed,
    RemoteCloseFailed,
    RemoteOpenFailed,
    WriteFailed,
)
from sftp_toolkit.options import OpenMode, TransferOptions

__all__ = [
    "DownloadError",
    "DownloadResult",
    "DownloadStage",
    "LocalCloseFailed",
    "LocalOpenFailed",
    "OpenMode",
    "ReadFailed",
    "RemoteCloseFailed",
    "RemoteOpenFailed",
    "TransferOptions",
    "WriteFailed",
    "download_file",
]
