"""Tests for sftp_toolkit/channel.py: the paramiko adapter and local filesystem."""

from __future__ import annotations

import io
import socket
from pathlib import Path
from unittest.mock import MagicMock, call

import paramiko
import pytest
from paramiko.sftp import CMD_CLOSE, CMD_DATA, CMD_READ

from sftp_toolkit.channel import LocalFilesystem, SFTPChannel, as_remote_channel
from sftp_toolkit.download import download_file
from sftp_toolkit.errors import DownloadStage, ReadFailed, RemoteCloseFailed, RemoteOpenFailed
from sftp_toolkit.options import OpenMode

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_sftp() -> MagicMock:
    """Return a mock paramiko.SFTPClient whose channel records timeouts."""
    sftp = MagicMock(spec=paramiko.SFTPClient)
    ssh_channel = MagicMock(spec=paramiko.Channel)
    ssh_channel.closed = False
    ssh_channel.eof_received = False
    ssh_channel.gettimeout.return_value = None
    sftp.get_channel.return_value = ssh_channel
    return sftp


def _data_message(data: bytes) -> paramiko.Message:
    """Build the body of an SFTP DATA response carrying *data*."""
    msg = paramiko.Message()
    msg.add_string(data)
    msg.rewind()
    return msg


# ---------------------------------------------------------------------------
# SFTPChannel
# ---------------------------------------------------------------------------


class TestSFTPChannel:
    def test_open_translates_mode_and_arms_timeout(self, mock_sftp: MagicMock) -> None:
        channel = SFTPChannel(mock_sftp)

        handle = channel.open("/home/deck/file.bin", OpenMode.READ | OpenMode.BINARY, 5.0)

        mock_sftp.open.assert_called_once_with("/home/deck/file.bin", "rb")
        assert mock_sftp.get_channel.return_value.settimeout.call_args_list == [
            call(5.0),
            call(None),
        ]
        assert handle is mock_sftp.open.return_value

    def test_read_and_close_use_handle(self, mock_sftp: MagicMock) -> None:
        channel = SFTPChannel(mock_sftp)
        handle = MagicMock()
        handle.read.return_value = b"chunk"

        assert channel.read(handle, 1024, 2.0) == b"chunk"
        channel.close(handle, 3.0)

        handle.read.assert_called_once_with(1024)
        handle.close.assert_called_once_with()
        assert mock_sftp.get_channel.return_value.settimeout.call_args_list == [
            call(2.0),
            call(None),
            call(3.0),
            call(None),
        ]

    def test_missing_channel_skips_timeout(self, mock_sftp: MagicMock) -> None:
        mock_sftp.get_channel.return_value = None
        channel = SFTPChannel(mock_sftp)

        channel.open("/f", OpenMode.READ, None)

        mock_sftp.open.assert_called_once_with("/f", "r")

    def test_previous_timeout_is_restored(self, mock_sftp: MagicMock) -> None:
        ssh_channel = mock_sftp.get_channel.return_value
        ssh_channel.gettimeout.return_value = 30.0
        channel = SFTPChannel(mock_sftp)

        channel.open("/f", OpenMode.READ, 5.0)

        assert ssh_channel.settimeout.call_args_list == [call(5.0), call(30.0)]

    def test_timeout_is_restored_when_operation_fails(self, mock_sftp: MagicMock) -> None:
        ssh_channel = mock_sftp.get_channel.return_value
        ssh_channel.gettimeout.return_value = 30.0
        handle = MagicMock()
        handle.read.side_effect = socket.timeout("timed out")

        with pytest.raises(socket.timeout):
            SFTPChannel(mock_sftp).read(handle, 1024, 0.5)

        assert ssh_channel.settimeout.call_args_list == [call(0.5), call(30.0)]

    def test_empty_read_on_live_channel_is_end_of_file(self, mock_sftp: MagicMock) -> None:
        handle = MagicMock()
        handle.read.return_value = b""

        assert SFTPChannel(mock_sftp).read(handle, 1024, 1.0) == b""

    @pytest.mark.parametrize("attribute", ["closed", "eof_received"])
    def test_empty_read_on_dead_channel_raises(
        self, mock_sftp: MagicMock, attribute: str
    ) -> None:
        setattr(mock_sftp.get_channel.return_value, attribute, True)
        handle = MagicMock()
        handle.read.return_value = b""

        with pytest.raises(EOFError, match="SFTP channel closed"):
            SFTPChannel(mock_sftp).read(handle, 1024, 1.0)

    def test_close_on_dead_channel_raises(self, mock_sftp: MagicMock) -> None:
        mock_sftp.get_channel.return_value.closed = True
        handle = MagicMock()

        with pytest.raises(EOFError, match="SFTP channel closed"):
            SFTPChannel(mock_sftp).close(handle, 1.0)

        handle.close.assert_called_once_with()

    def test_as_remote_channel_wraps_sftp_client(self, mock_sftp: MagicMock) -> None:
        wrapped = as_remote_channel(mock_sftp)

        assert isinstance(wrapped, SFTPChannel)
        assert wrapped.sftp is mock_sftp

    def test_as_remote_channel_passes_other_channels_through(self) -> None:
        custom = object()
        assert as_remote_channel(custom) is custom


# ---------------------------------------------------------------------------
# End-to-end through a mocked paramiko client
# ---------------------------------------------------------------------------


class TestParamikoDownload:
    def test_download_from_sftp_client(self, mock_sftp: MagicMock, tmp_path: Path) -> None:
        content = bytes(range(256)) * 300
        mock_sftp.open.return_value = io.BytesIO(content)
        dest = tmp_path / "out.bin"

        result = download_file(mock_sftp, "/home/deck/out.bin", dest)

        assert result.ok
        assert dest.read_bytes() == content
        mock_sftp.open.assert_called_once_with("/home/deck/out.bin", "rb")
        assert mock_sftp.open.return_value.closed

    def test_ssh_exception_on_open_is_classified(
        self, mock_sftp: MagicMock, tmp_path: Path
    ) -> None:
        cause = paramiko.SSHException("channel closed")
        mock_sftp.open.side_effect = cause

        result = download_file(mock_sftp, "/f", tmp_path / "out.bin")

        assert isinstance(result.error, RemoteOpenFailed)
        assert result.cause is cause
        assert not (tmp_path / "out.bin").exists()

    def test_socket_timeout_on_read_is_classified(
        self, mock_sftp: MagicMock, tmp_path: Path
    ) -> None:
        handle = MagicMock()
        handle.read.side_effect = socket.timeout("timed out")
        mock_sftp.open.return_value = handle

        result = download_file(mock_sftp, "/f", tmp_path / "out.bin", {"operation_timeout": 0.5})

        assert isinstance(result.error, ReadFailed)
        handle.close.assert_called_once_with()
        assert call(0.5) in mock_sftp.get_channel.return_value.settimeout.call_args_list

    def test_channel_teardown_mid_read_is_a_read_failure(
        self, mock_sftp: MagicMock, tmp_path: Path
    ) -> None:
        """paramiko hides the EOFError inside SFTPFile.read; it must still fail."""
        ssh_channel = mock_sftp.get_channel.return_value
        first = bytes(range(256)) * 128
        responses = [(CMD_DATA, _data_message(first))]

        def request(cmd: int, *args: object) -> tuple[int, paramiko.Message]:
            if cmd == CMD_READ and responses:
                return responses.pop(0)
            ssh_channel.closed = True
            raise EOFError()

        mock_sftp._request.side_effect = request
        mock_sftp.open.return_value = paramiko.SFTPFile(mock_sftp, b"handle", "rb")
        dest = tmp_path / "out.bin"

        result = download_file(mock_sftp, "/home/deck/big.bin", dest)

        assert isinstance(result.error, ReadFailed)
        assert result.error.tag == "download.read"
        assert isinstance(result.cause, EOFError)
        assert result.bytes_transferred == len(first)
        assert dest.read_bytes() == first

    def test_end_of_file_on_live_channel_completes(
        self, mock_sftp: MagicMock, tmp_path: Path
    ) -> None:
        content = b"x" * 1000
        responses = [(CMD_DATA, _data_message(content))]

        def request(cmd: int, *args: object) -> tuple[int, paramiko.Message]:
            if cmd == CMD_READ and responses:
                return responses.pop(0)
            raise EOFError()

        mock_sftp._request.side_effect = request
        mock_sftp.open.return_value = paramiko.SFTPFile(mock_sftp, b"handle", "rb")
        dest = tmp_path / "out.bin"

        result = download_file(mock_sftp, "/f", dest)

        assert result.ok
        assert dest.read_bytes() == content

    def test_channel_teardown_at_close_is_a_remote_close_failure(
        self, mock_sftp: MagicMock, tmp_path: Path
    ) -> None:
        """SFTPFile.close swallows the EOFError of a dead channel."""
        ssh_channel = mock_sftp.get_channel.return_value
        content = b"y" * 2048
        responses = [(CMD_DATA, _data_message(content))]

        def request(cmd: int, *args: object) -> tuple[int, paramiko.Message]:
            if cmd == CMD_READ and responses:
                return responses.pop(0)
            if cmd == CMD_CLOSE:
                ssh_channel.closed = True
            raise EOFError()

        mock_sftp._request.side_effect = request
        mock_sftp.open.return_value = paramiko.SFTPFile(mock_sftp, b"handle", "rb")
        dest = tmp_path / "out.bin"

        result = download_file(mock_sftp, "/f", dest)

        assert isinstance(result.error, RemoteCloseFailed)
        assert result.stage is DownloadStage.REMOTE_CLOSE
        assert result.bytes_transferred == len(content)
        assert dest.read_bytes() == content

    def test_caller_timeout_is_restored_after_download(
        self, mock_sftp: MagicMock, tmp_path: Path
    ) -> None:
        ssh_channel = mock_sftp.get_channel.return_value
        ssh_channel.gettimeout.return_value = 60.0
        mock_sftp.open.return_value = io.BytesIO(b"data")

        result = download_file(mock_sftp, "/f", tmp_path / "out.bin", {"operation_timeout": 2})

        assert result.ok
        assert ssh_channel.settimeout.call_args_list[-1] == call(60.0)
        assert call(2) in ssh_channel.settimeout.call_args_list


# ---------------------------------------------------------------------------
# LocalFilesystem
# ---------------------------------------------------------------------------


class TestLocalFilesystem:
    def test_write_roundtrip(self, tmp_path: Path) -> None:
        fs = LocalFilesystem()
        path = tmp_path / "f.bin"

        handle = fs.open(path, OpenMode.WRITE | OpenMode.BINARY)
        fs.write(handle, b"abc")
        fs.write(handle, b"def")
        fs.close(handle)

        assert path.read_bytes() == b"abcdef"

    def test_open_missing_directory_raises_oserror(self, tmp_path: Path) -> None:
        fs = LocalFilesystem()

        with pytest.raises(FileNotFoundError):
            fs.open(tmp_path / "missing" / "f.bin", OpenMode.WRITE | OpenMode.BINARY)
