"""
File system backends.

All backends implement the same contract, so the sync engine runs
unmodified over:
- The local disk
- An FTP server
- An in-memory tree
"""

from flagsync.core.filesystem.base import FileSystem
from flagsync.core.filesystem.local import LocalFileSystem
from flagsync.core.filesystem.ftp import FtpFileSystem
from flagsync.core.filesystem.virtual import VirtualFileSystem

__all__ = [
    'FileSystem',
    'LocalFileSystem',
    'FtpFileSystem',
    'VirtualFileSystem',
]
