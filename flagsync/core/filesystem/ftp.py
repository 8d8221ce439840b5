"""
FTP implementation of the file system contract.

Uses one control connection per file system instance; the connection is
opened lazily with the configured timeout and is not shared between jobs.
Network failures and timeouts are logged and reported as FAILED, permission
replies from the server as UNAUTHORIZED.
"""

from __future__ import annotations

import ftplib
import logging
import posixpath
import re
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

from flagsync.core.copy_operation import DEFAULT_CHUNK_SIZE, CopyState
from flagsync.core.errors import AuthorizationError, PreconditionError, TransientIOError
from flagsync.core.filesystem.base import FileSystem
from flagsync.core.models import (
    MIN_TIMESTAMP,
    CancellationToken,
    DirectoryInfo,
    FileInfo,
    FtpDirectoryInfo,
    FtpFileInfo,
    Outcome,
)


DEFAULT_PORT = 21
DEFAULT_TIMEOUT = 30.0

# Server replies meaning the user is not allowed to do something
PERMISSION_REPLY_CODES = ('530', '532', '553')


def is_permission_error(error: BaseException) -> bool:
    """Check if an FTP error is an access denial rather than a missing path."""
    if not isinstance(error, ftplib.error_perm):
        return False
    message = str(error)
    return message[:3] in PERMISSION_REPLY_CODES or 'permission denied' in message.lower()


def parse_ftp_timestamp(value: str) -> datetime:
    """Parse a MDTM/MLSD timestamp (UTC, YYYYMMDDHHMMSS[.sss]) into local time."""
    parsed = datetime.strptime(value[:14], '%Y%m%d%H%M%S').replace(tzinfo=timezone.utc)
    return parsed.astimezone().replace(tzinfo=None)


class FtpTransferStream:
    """
    Data connection of a RETR or STOR transfer used as a binary stream.

    Closing the stream closes the data connection and reads the final
    reply of the transfer from the control connection.
    """

    def __init__(self, client: ftplib.FTP, connection, mode: str):
        self._client = client
        self._connection = connection
        self._file = connection.makefile(mode)
        self._mode = mode
        self._eof = False
        self.closed = False

    def readable(self) -> bool:
        return 'r' in self._mode

    def writable(self) -> bool:
        return 'w' in self._mode

    def read(self, size: int = -1) -> bytes:
        try:
            data = self._file.read(size)
        except ftplib.all_errors as e:
            raise TransientIOError(f"FTP read failed: {e}") from e
        if not data:
            self._eof = True
        return data

    def write(self, data: bytes) -> int:
        try:
            return self._file.write(data)
        except ftplib.all_errors as e:
            raise TransientIOError(f"FTP write failed: {e}") from e

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True

        try:
            self._file.close()
            self._connection.close()
            self._client.voidresp()
        except ftplib.error_temp as e:
            if self.readable() and not self._eof:
                # Aborted download, the server reports the broken transfer
                logging.debug(f"FtpTransferStream - Transfer aborted: {e}")
            else:
                raise TransientIOError(f"FTP transfer failed: {e}") from e
        except ftplib.all_errors as e:
            raise TransientIOError(f"FTP transfer failed: {e}") from e

    def __enter__(self) -> 'FtpTransferStream':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class FtpFileSystem(FileSystem):
    """
    Backend for an FTP server.

    Usage:
        with FtpFileSystem("ftp.example.com", "user", "secret") as fs:
            fs.directory_exists("/backup")
    """

    def __init__(
        self,
        host: str,
        username: str = 'anonymous',
        password: str = '',
        port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        passive: bool = True,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP
    ):
        super().__init__(chunk_size)

        if not host:
            raise PreconditionError("host is required")
        if username is None or password is None:
            raise PreconditionError("credentials are required")

        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.timeout = timeout
        self.passive = passive
        self._ftp_factory = ftp_factory
        self._client: Optional[ftplib.FTP] = None

    @classmethod
    def from_uri(
        cls,
        server_address: str,
        username: str,
        password: str,
        **kwargs
    ) -> 'FtpFileSystem':
        """Create from an address like ftp://host:21/."""
        if not server_address:
            raise PreconditionError("server_address is required")

        parsed = urlparse(server_address if '://' in server_address else f"ftp://{server_address}")
        if parsed.scheme != 'ftp' or not parsed.hostname:
            raise PreconditionError(f"Invalid FTP server address: {server_address}")

        return cls(
            parsed.hostname,
            username,
            password,
            port=parsed.port or DEFAULT_PORT,
            **kwargs
        )

    # --- Connection ---

    @property
    def client(self) -> ftplib.FTP:
        """The control connection, opened on first use."""
        if self._client is None:
            self._client = self._connect()
        return self._client

    def _connect(self) -> ftplib.FTP:
        logging.info(f"FtpFileSystem - Connecting to {self.host}:{self.port}")

        client = self._ftp_factory()
        try:
            client.connect(self.host, self.port, timeout=self.timeout)
            client.login(self.username, self.password)
            client.set_pasv(self.passive)
            client.voidcmd('TYPE I')
        except ftplib.all_errors as e:
            client.close()
            raise TransientIOError(f"Could not connect to {self.host}:{self.port}: {e}") from e

        return client

    def close(self) -> None:
        if self._client is None:
            return

        try:
            self._client.quit()
        except ftplib.all_errors as e:
            logging.debug(f"FtpFileSystem - QUIT failed, closing connection: {e}")
            self._client.close()
        finally:
            self._client = None

    # --- Paths ---

    def normalize_path(self, path: str) -> str:
        if path is None:
            raise PreconditionError("path is required")

        path = unquote(path).replace('\\', '/')
        path = re.sub(r'/+', '/', path)
        if not path.startswith('/'):
            path = '/' + path

        return posixpath.normpath(path)

    def combine_path(self, directory_path: str, name: str) -> str:
        return self.normalize_path(f"{directory_path}/{name}")

    @staticmethod
    def _parent_of(path: str) -> Optional[str]:
        return None if path == '/' else posixpath.dirname(path)

    # --- Lookups ---

    def resolve_file(self, path: str) -> FtpFileInfo:
        path = self.normalize_path(path)
        size = 0
        last_write_time = MIN_TIMESTAMP

        try:
            size = self.client.size(path) or 0
            reply = self.client.voidcmd(f"MDTM {path}")
            last_write_time = parse_ftp_timestamp(reply.split()[1])
        except ftplib.error_perm:
            # Missing file or MDTM not supported
            pass
        except ValueError as e:
            logging.debug(f"FtpFileSystem - Unexpected MDTM reply for {path}: {e}")
        except ftplib.all_errors as e:
            raise TransientIOError(f"Failed to resolve {path}: {e}") from e

        return FtpFileInfo(
            full_name=path,
            name=posixpath.basename(path),
            parent_path=self._parent_of(path),
            size=size,
            last_write_time=last_write_time,
            file_system=self,
        )

    def resolve_directory(self, path: str) -> FtpDirectoryInfo:
        path = self.normalize_path(path)
        return FtpDirectoryInfo(
            full_name=path,
            name=posixpath.basename(path),
            parent_path=self._parent_of(path),
            file_system=self,
        )

    def file_exists(self, path: str) -> bool:
        path = self.normalize_path(path)
        try:
            self.client.size(path)
            return True
        except ftplib.error_perm:
            return False
        except ftplib.all_errors as e:
            raise TransientIOError(f"Failed to check {path}: {e}") from e

    def directory_exists(self, path: str) -> bool:
        path = self.normalize_path(path)
        try:
            current = self.client.pwd()
            try:
                self.client.cwd(path)
            except ftplib.error_perm:
                return False
            self.client.cwd(current)
            return True
        except ftplib.all_errors as e:
            raise TransientIOError(f"Failed to check {path}: {e}") from e

    def list_files(self, directory: DirectoryInfo) -> list[FileInfo]:
        self._require(directory, "directory")
        parent = self.normalize_path(directory.full_name)

        files = []
        for name, facts in self._list(parent):
            if facts.get('type', '').lower() != 'file':
                continue

            modify = facts.get('modify')
            files.append(FtpFileInfo(
                full_name=self.combine_path(parent, name),
                name=name,
                parent_path=parent,
                size=int(facts.get('size', 0)),
                last_write_time=parse_ftp_timestamp(modify) if modify else MIN_TIMESTAMP,
                file_system=self,
            ))
        return files

    def list_directories(self, directory: DirectoryInfo) -> list[DirectoryInfo]:
        self._require(directory, "directory")
        parent = self.normalize_path(directory.full_name)

        return [
            self.resolve_directory(self.combine_path(parent, name))
            for name, facts in self._list(parent)
            if facts.get('type', '').lower() == 'dir'
        ]

    def _list(self, path: str) -> list[tuple[str, dict]]:
        try:
            entries = self.client.mlsd(path, facts=['type', 'size', 'modify'])
            return sorted(entries, key=lambda entry: entry[0])
        except ftplib.error_perm as e:
            if is_permission_error(e):
                raise AuthorizationError(path, "Access denied listing directory") from e
            if not self.directory_exists(path):
                return []
            raise TransientIOError(f"Failed to list {path}: {e}") from e
        except ftplib.all_errors as e:
            raise TransientIOError(f"Failed to list {path}: {e}") from e

    # --- Mutations ---

    def _report(self, error: BaseException, message: str) -> Outcome:
        logging.error(f"FtpFileSystem - {type(error).__name__} {message}: {error}")
        return Outcome.UNAUTHORIZED if is_permission_error(error) else Outcome.FAILED

    def try_create_directory(
        self,
        source_directory: DirectoryInfo,
        target_parent: DirectoryInfo
    ) -> Outcome:
        self._require(source_directory, "source_directory")
        self._require(target_parent, "target_parent")

        new_path = self.combine_path(target_parent.full_name, source_directory.name)

        try:
            self.client.mkd(new_path)
        except ftplib.error_perm as e:
            if not is_permission_error(e) and self.directory_exists(new_path):
                return Outcome.OK
            return self._report(e, f"creating directory: {source_directory.full_name} in directory: {target_parent.full_name}")
        except ftplib.all_errors as e:
            return self._report(e, f"creating directory: {source_directory.full_name} in directory: {target_parent.full_name}")

        return Outcome.OK

    def try_delete_file(self, file: FileInfo) -> Outcome:
        self._require_type(file, FtpFileInfo, "file")
        path = self.normalize_path(file.full_name)

        try:
            self.client.delete(path)
        except ftplib.all_errors as e:
            return self._report(e, f"while deleting file: {path}")

        return Outcome.OK

    def try_delete_directory(self, directory: DirectoryInfo) -> Outcome:
        self._require_type(directory, FtpDirectoryInfo, "directory")
        path = self.normalize_path(directory.full_name)

        try:
            for file in self.list_files(directory):
                self.client.delete(file.full_name)

            for subdirectory in self.list_directories(directory):
                outcome = self.try_delete_directory(subdirectory)
                if not outcome:
                    return outcome

            self.client.rmd(path)
        except ftplib.all_errors as e:
            return self._report(e, f"while deleting directory: {path}")
        except AuthorizationError as e:
            logging.error(f"FtpFileSystem - {e}")
            return Outcome.UNAUTHORIZED

        return Outcome.OK

    def try_copy_file(
        self,
        source_file_system: FileSystem,
        source_file: FileInfo,
        target_directory: DirectoryInfo,
        token: Optional[CancellationToken] = None
    ) -> Outcome:
        self._require(source_file_system, "source_file_system")
        self._require(source_file, "source_file")
        self._require_type(target_directory, FtpDirectoryInfo, "target_directory")

        target_path = self.combine_path(target_directory.full_name, source_file.name)
        message = f"while copying file: {source_file.full_name} to directory: {target_directory.full_name}"

        try:
            source_stream = source_file_system.open_read_stream(source_file)
        except OSError as e:
            return self._report(e, message)

        try:
            connection = self.client.transfercmd(f"STOR {target_path}")
        except ftplib.all_errors as e:
            source_stream.close()
            return self._report(e, message)

        target_stream = FtpTransferStream(self.client, connection, 'wb')

        try:
            state = self._copy_stream(source_stream, target_stream, source_file, token)
        except OSError as e:
            return self._report(e, message)

        if state is not CopyState.COMPLETED:
            return Outcome.CANCELLED

        if source_file.last_write_time != MIN_TIMESTAMP:
            self._set_modification_time(target_path, source_file.last_write_time)

        return Outcome.OK

    def _set_modification_time(self, path: str, value: datetime) -> None:
        stamp = value.astimezone(timezone.utc).strftime('%Y%m%d%H%M%S')
        try:
            self.client.voidcmd(f"MFMT {stamp} {path}")
        except ftplib.all_errors as e:
            logging.debug(f"FtpFileSystem - MFMT not applied to {path}: {e}")

    def open_read_stream(self, file: FileInfo) -> FtpTransferStream:
        self._require(file, "file")
        path = self.normalize_path(file.full_name)

        try:
            connection = self.client.transfercmd(f"RETR {path}")
        except ftplib.all_errors as e:
            raise TransientIOError(f"Cannot open {path} for reading: {e}") from e

        return FtpTransferStream(self.client, connection, 'rb')
