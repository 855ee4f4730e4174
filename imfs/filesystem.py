"""An in-memory file system with a separate descriptor table per cage."""

from __future__ import annotations

import errno
import os
import stat as _stat
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable

MAX_NODE_NAME = 64
MAX_FDS = 1024
MAX_NODES = 1024
MAX_DEPTH = 10
MAX_PROCS = 128

STAT_UID = 501
STAT_GID = 20
STAT_DEV = 1
FIRST_FD = 3

AT_FDCWD = -100

O_RDONLY = os.O_RDONLY
O_WRONLY = os.O_WRONLY
O_RDWR = os.O_RDWR
O_ACCMODE = 3
O_CREAT = os.O_CREAT
O_TRUNC = os.O_TRUNC
O_DIRECTORY = getattr(os, "O_DIRECTORY", 0o200000)

SEEK_SET = os.SEEK_SET
SEEK_CUR = os.SEEK_CUR
SEEK_END = os.SEEK_END
SEEK_DATA = getattr(os, "SEEK_DATA", 3)
SEEK_HOLE = getattr(os, "SEEK_HOLE", 4)


def _error(code: int, filename: str | None = None) -> OSError:
    return OSError(code, os.strerror(code), filename)


class NodeType(IntEnum):
    """Kind of a node; the values are the file-type bits of st_mode."""

    NON = 0
    REG = _stat.S_IFREG
    DIR = _stat.S_IFDIR
    LNK = _stat.S_IFLNK


@dataclass(eq=False)
class Node:
    """A file, directory or link held in the node table."""

    index: int
    type: NodeType = NodeType.NON
    name: str = ""
    mode: int = 0
    parent: Node | None = None
    in_use: int = 0
    doomed: bool = False
    data: bytearray = field(default_factory=bytearray)
    children: list[DirEntry] = field(default_factory=list)
    link: Node | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(eq=False)
class DirEntry:
    """A named entry of a directory."""

    name: str
    node: Node

    @property
    def inode(self) -> int:
        return self.node.index

    @property
    def type(self) -> NodeType:
        return self.node.type


@dataclass(eq=False)
class FileDesc:
    """An open file description, shared by duplicated descriptors."""

    node: Node
    offset: int = 0


@dataclass
class DirStream:
    """State of a directory being read with readdir."""

    fd: int
    node: Node
    size: int = 0
    offset: int = 0
    filepos: int = 0


@dataclass(frozen=True)
class StatResult:
    st_dev: int
    st_ino: int
    st_mode: int
    st_nlink: int
    st_uid: int
    st_gid: int
    st_rdev: int
    st_size: int
    st_blksize: int
    st_blocks: int


@dataclass
class _Cage:
    fds: dict[int, FileDesc] = field(default_factory=dict)
    next_fd: int = FIRST_FD
    free: list[int] = field(default_factory=list)


def _split_path(path: str) -> list[str]:
    if path.startswith("/"):
        path = path[1:]
    parts = path.split("/")
    if len(parts) > MAX_DEPTH or any(len(p) >= MAX_NODE_NAME for p in parts):
        raise _error(errno.ENAMETOOLONG, path)
    return parts


class FileSystem:
    """A tree of nodes in memory, used through POSIX-like calls."""

    def __init__(self):
        self._nodes = [Node(index=i) for i in range(MAX_NODES)]
        self._next_node = 0
        self._free_nodes: list[int] = []
        self._cages: dict[int, _Cage] = {}
        self.root = self._create_node("/", NodeType.DIR, 0o755)
        self.root.parent = self.root
        self._add_dot_entries(self.root, self.root)

    # Node table

    def _free_capacity(self) -> int:
        return len(self._free_nodes) + MAX_NODES - self._next_node

    def _create_node(self, name: str, kind: NodeType, mode: int) -> Node:
        if self._free_nodes:
            index = self._free_nodes.pop()
        elif self._next_node < MAX_NODES:
            index = self._next_node
            self._next_node += 1
        else:
            raise _error(errno.ENOMEM)
        node = Node(
            index=index,
            type=kind,
            name=name[: MAX_NODE_NAME - 1],
            mode=int(kind) | (mode & 0o777),
        )
        self._nodes[index] = node
        return node

    def _free_node(self, node: Node) -> None:
        if node.type is NodeType.NON:
            return
        if node.type is NodeType.DIR:
            for entry in node.children:
                if entry.node.type is NodeType.LNK and entry.name in (".", ".."):
                    self._free_node(entry.node)
        node.type = NodeType.NON
        node.data = bytearray()
        node.children = []
        self._free_nodes.append(node.index)

    @staticmethod
    def _add_child(parent: Node, node: Node) -> None:
        if parent.type is not NodeType.DIR:
            raise _error(errno.ENOTDIR, parent.name)
        parent.children.append(DirEntry(node.name, node))
        node.parent = parent

    def _add_dot_entries(self, node: Node, parent: Node) -> None:
        dot = self._create_node(".", NodeType.LNK, 0)
        dot.link = node
        dotdot = self._create_node("..", NodeType.LNK, 0)
        dotdot.link = parent
        self._add_child(node, dot)
        self._add_child(node, dotdot)

    # Descriptor tables

    def _cage(self, cage_id: int) -> _Cage:
        if not 0 <= cage_id < MAX_PROCS:
            raise _error(errno.EINVAL)
        return self._cages.setdefault(cage_id, _Cage())

    def _desc(self, cage_id: int, fd: int) -> FileDesc:
        desc = self._cage(cage_id).fds.get(fd)
        if desc is None:
            raise _error(errno.EBADF)
        return desc

    def _regular_desc(self, cage_id: int, fd: int) -> FileDesc:
        desc = self._desc(cage_id, fd)
        if desc.node.type is not NodeType.REG:
            raise _error(errno.EISDIR, desc.node.name)
        return desc

    @staticmethod
    def _allocate_fd(cage: _Cage, desc: FileDesc) -> int:
        while cage.free:
            fd = cage.free.pop()
            if fd not in cage.fds:
                break
        else:
            while cage.next_fd in cage.fds:
                cage.next_fd += 1
            if cage.next_fd >= MAX_FDS:
                raise _error(errno.EMFILE)
            fd = cage.next_fd
            cage.next_fd += 1
        cage.fds[fd] = desc
        desc.node.in_use += 1
        return fd

    # Lookup

    def _walk(self, cage_id: int, dirfd: int, parts: list[str]) -> Node | None:
        if not parts:
            return self.root
        current = self.root if dirfd == AT_FDCWD else self._desc(cage_id, dirfd).node
        for part in parts:
            if current.type is not NodeType.DIR:
                return None
            found = next((e.node for e in current.children if e.name == part), None)
            if found is not None and found.type is NodeType.LNK:
                found = found.link
            if found is None or found.type is NodeType.NON or found.doomed:
                return None
            current = found
        return current

    def _lookup(self, cage_id: int, dirfd: int, path: str | None) -> Node | None:
        if path is None:
            return None
        if path == "/":
            return self.root
        return self._walk(cage_id, dirfd, _split_path(path))

    # Opening and closing

    def openat(self, cage_id, dirfd, path, flags, mode):
        """Open or create a file relative to dirfd and return its descriptor."""
        if path is None:
            raise _error(errno.EINVAL)
        if dirfd == -1:
            raise _error(errno.EBADF, path)
        cage = self._cage(cage_id)
        node = self._lookup(cage_id, dirfd, path)
        if node is None:
            if not flags & O_CREAT:
                raise _error(errno.ENOENT, path)
            parts = _split_path(path)
            filename = parts[-1]
            parent = self._walk(cage_id, dirfd, parts[:-1])
            if parent is None or parent.type is not NodeType.DIR:
                raise _error(errno.ENOTDIR, path)
            if not filename:
                raise _error(errno.ENOENT, path)
            node = self._create_node(filename, NodeType.REG, mode)
            self._add_child(parent, node)
        else:
            if flags & O_CREAT:
                raise _error(errno.EEXIST, path)
            if node.type is NodeType.DIR and not flags & O_DIRECTORY:
                raise _error(errno.EISDIR, path)
            access = flags & O_ACCMODE
            readable = bool(node.mode & _stat.S_IROTH)
            writable = bool(node.mode & _stat.S_IWOTH)
            if (
                (access == O_RDONLY and not readable)
                or (access == O_RDWR and not (readable and writable))
                or (access == O_WRONLY and not writable)
            ):
                raise _error(errno.EACCES, path)
        return self._allocate_fd(cage, FileDesc(node))

    def open(self, cage_id, path, flags, mode):
        """Open a path; relative paths start at the root."""
        return self.openat(cage_id, AT_FDCWD, path, flags, mode)

    def creat(self, cage_id, path, mode):
        """Create a file and open it for writing."""
        return self.open(cage_id, path, O_WRONLY | O_CREAT | O_TRUNC, mode)

    def close(self, cage_id, fd):
        """Close a descriptor; a removed node is freed when no longer open."""
        cage = self._cage(cage_id)
        desc = cage.fds.pop(fd, None)
        if desc is None:
            raise _error(errno.EBADF)
        cage.free.append(fd)
        node = desc.node
        node.in_use -= 1
        if node.doomed and node.in_use <= 0:
            self._free_node(node)

    # Reading

    def read(self, cage_id, fd, count):
        """Read up to count bytes at the descriptor's offset and advance it."""
        if count < 0:
            raise _error(errno.EINVAL)
        desc = self._regular_desc(cage_id, fd)
        chunk = bytes(desc.node.data[desc.offset : desc.offset + count])
        desc.offset += len(chunk)
        return chunk

    def pread(self, cage_id, fd, count, offset):
        """Read up to count bytes at offset without moving the descriptor."""
        if count < 0 or offset < 0:
            raise _error(errno.EINVAL)
        desc = self._regular_desc(cage_id, fd)
        return bytes(desc.node.data[offset : offset + count])

    def readv(self, cage_id, fd, sizes: Iterable[int]):
        """Read one chunk per requested size; returns the chunks."""
        return [self.read(cage_id, fd, size) for size in sizes]

    def preadv(self, cage_id, fd, sizes: Iterable[int], offset):
        """Read consecutive chunks starting at offset without moving the descriptor."""
        chunks = []
        for size in sizes:
            chunk = self.pread(cage_id, fd, size, offset)
            chunks.append(chunk)
            offset += len(chunk)
        return chunks

    # Writing

    @staticmethod
    def _store(node: Node, position: int, data: bytes) -> None:
        if position > len(node.data):
            node.data.extend(bytes(position - len(node.data)))
        node.data[position : position + len(data)] = data

    def write(self, cage_id, fd, data):
        """Write data at the descriptor's offset and advance it."""
        desc = self._regular_desc(cage_id, fd)
        data = bytes(data)
        self._store(desc.node, desc.offset, data)
        desc.offset += len(data)
        return len(data)

    def pwrite(self, cage_id, fd, data, offset):
        """Write data at offset without moving the descriptor."""
        if offset < 0:
            raise _error(errno.EINVAL)
        desc = self._regular_desc(cage_id, fd)
        data = bytes(data)
        self._store(desc.node, offset, data)
        return len(data)

    def writev(self, cage_id, fd, buffers):
        """Write each buffer in turn; returns the total written."""
        return sum(self.write(cage_id, fd, buf) for buf in buffers)

    def pwritev(self, cage_id, fd, buffers, offset):
        """Write buffers consecutively from offset without moving the descriptor."""
        total = 0
        for buf in buffers:
            total += self.pwrite(cage_id, fd, buf, offset + total)
        return total

    # Directories and links

    def mkdirat(self, cage_id, fd, path, mode):
        """Create a directory relative to fd."""
        if path is None:
            raise _error(errno.EINVAL)
        parts = _split_path(path)
        filename = parts[-1]
        if filename in (".", "..", ""):
            raise _error(errno.EINVAL, path)
        parent = self._walk(cage_id, fd, parts[:-1])
        if parent is None:
            raise _error(errno.EINVAL, path)
        if parent.type is not NodeType.DIR:
            raise _error(errno.ENOTDIR, path)
        if any(e.name == filename for e in parent.children):
            raise _error(errno.EEXIST, path)
        if self._free_capacity() < 3:
            raise _error(errno.ENOMEM, path)
        node = self._create_node(filename, NodeType.DIR, mode)
        self._add_child(parent, node)
        self._add_dot_entries(node, parent)

    def mkdir(self, cage_id, path, mode):
        """Create a directory."""
        self.mkdirat(cage_id, AT_FDCWD, path, mode)

    def linkat(self, cage_id, olddirfd, oldpath, newdirfd, newpath, flags):
        """Make newpath a link to the node found at oldpath."""
        target = self._lookup(cage_id, olddirfd, oldpath)
        if target is None:
            raise _error(errno.EINVAL, oldpath)
        if newpath is None or self._lookup(cage_id, newdirfd, newpath) is not None:
            raise _error(errno.EINVAL, newpath)
        parts = _split_path(newpath)
        filename = parts[-1]
        parent = self._walk(cage_id, newdirfd, parts[:-1])
        if parent is None or parent.type is not NodeType.DIR or not filename:
            raise _error(errno.ENOENT, newpath)
        if any(e.name == filename for e in parent.children):
            raise _error(errno.EEXIST, newpath)
        node = self._create_node(filename, NodeType.LNK, 0)
        node.link = target
        self._add_child(parent, node)

    def link(self, cage_id, oldpath, newpath):
        self.linkat(cage_id, AT_FDCWD, oldpath, AT_FDCWD, newpath, 0)

    def symlink(self, cage_id, oldpath, newpath):
        self.linkat(cage_id, AT_FDCWD, oldpath, AT_FDCWD, newpath, 0)

    def remove(self, cage_id, pathname):
        """Remove the node a path resolves to; open nodes live until closed."""
        self._cage(cage_id)
        node = self._lookup(cage_id, AT_FDCWD, pathname)
        if node is None:
            raise _error(errno.ENOENT, pathname)
        if node.type is NodeType.DIR:
            if node is self.root or any(e.name not in (".", "..") for e in node.children):
                raise _error(errno.EBUSY, pathname)
        parent = node.parent
        if parent is not None:
            parent.children = [e for e in parent.children if e.node is not node]
        node.doomed = True
        if node.in_use <= 0:
            self._free_node(node)

    def rmdir(self, cage_id, pathname):
        self.remove(cage_id, pathname)

    def unlink(self, cage_id, pathname):
        self.remove(cage_id, pathname)

    # Positioning and duplication

    def lseek(self, cage_id, fd, offset, whence):
        """Move the descriptor's offset and return the new one."""
        desc = self._desc(cage_id, fd)
        node = desc.node
        if whence == SEEK_SET:
            position = offset
        elif whence == SEEK_CUR:
            position = desc.offset + offset
        elif whence == SEEK_END:
            position = node.size + offset
        elif whence == SEEK_HOLE:
            position = desc.offset
            while position < node.size and node.data[position]:
                position += 1
        elif whence == SEEK_DATA:
            position = desc.offset
            while position < node.size and not node.data[position]:
                position += 1
        else:
            raise _error(errno.EINVAL)
        if position < 0:
            raise _error(errno.EINVAL)
        desc.offset = position
        return position

    def dup(self, cage_id, fd):
        """Return a new descriptor sharing fd's open file description."""
        desc = self._desc(cage_id, fd)
        return self._allocate_fd(self._cage(cage_id), desc)

    def dup2(self, cage_id, oldfd, newfd):
        """Make newfd share oldfd's open file description."""
        desc = self._desc(cage_id, oldfd)
        if newfd == oldfd:
            return newfd
        if not 0 <= newfd < MAX_FDS:
            raise _error(errno.EBADF)
        cage = self._cage(cage_id)
        if newfd in cage.fds:
            self.close(cage_id, newfd)
        cage.fds[newfd] = desc
        desc.node.in_use += 1
        return newfd

    # Status

    @staticmethod
    def _stat_of(node: Node) -> StatResult:
        return StatResult(
            st_dev=STAT_DEV,
            st_ino=node.index,
            st_mode=node.mode,
            st_nlink=1,
            st_uid=STAT_UID,
            st_gid=STAT_GID,
            st_rdev=0,
            st_size=node.size,
            st_blksize=512,
            st_blocks=node.size // 512,
        )

    def lstat(self, cage_id, pathname):
        node = self._lookup(cage_id, AT_FDCWD, pathname)
        if node is None:
            raise _error(errno.ENOENT, pathname)
        return self._stat_of(node)

    def stat(self, cage_id, pathname):
        node = self._lookup(cage_id, AT_FDCWD, pathname)
        if node is None:
            raise _error(errno.ENOENT, pathname)
        if node.type is NodeType.LNK and node.link is not None:
            node = node.link
        return self._stat_of(node)

    def fstat(self, cage_id, fd):
        node = self._desc(cage_id, fd).node
        if node.type is NodeType.LNK and node.link is not None:
            node = node.link
        return self._stat_of(node)

    # Directory streams

    def opendir(self, cage_id, name):
        """Open a directory for reading with readdir."""
        fd = self.open(cage_id, name, O_DIRECTORY, 0)
        node = self._desc(cage_id, fd).node
        if node.type is not NodeType.DIR:
            self.close(cage_id, fd)
            raise _error(errno.ENOTDIR, name)
        return DirStream(fd=fd, node=node)

    def readdir(self, cage_id, dirstream):
        """Return the next entry of the stream, or None at its end."""
        self._cage(cage_id)
        children = dirstream.node.children
        if dirstream.offset >= len(children):
            return None
        entry = children[dirstream.offset]
        dirstream.offset += 1
        return entry