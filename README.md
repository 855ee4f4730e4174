# imfs

An in-memory file system with a POSIX-like call interface. Each process,
called a "cage" and identified by a number from 0 to 127, has its own table
of file descriptors. All cages share one tree of nodes held in memory.
Files, directories and links are Python objects. The host disk is read
only when you load a host folder into the tree.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

```python
from imfs.filesystem import FileSystem, O_CREAT, O_RDWR, SEEK_SET

fs = FileSystem()
cage = 0

fs.mkdir(cage, "/docs", 0o755)
fd = fs.open(cage, "/docs/notes.txt", O_CREAT | O_RDWR, 0o666)
fs.write(cage, fd, b"hello world")
fs.lseek(cage, fd, 0, SEEK_SET)
print(fs.read(cage, fd, 5))          # b'hello'
print(fs.pread(cage, fd, 5, 6))      # b'world'
fs.close(cage, fd)

print(fs.stat(cage, "/docs/notes.txt").st_size)   # 11

stream = fs.opendir(cage, "/docs")
while (entry := fs.readdir(cage, stream)) is not None:
    print(entry.name, entry.inode, entry.type.name)
fs.close(cage, stream.fd)
```

Paths are always resolved from the root, whether or not they begin with
`/`. The `*at` calls take a directory descriptor instead, or `AT_FDCWD`.

### Calls

Every method of `FileSystem` takes the cage id as its first argument.

- Opening and closing: `open`, `openat`, `creat` and `close`. These return
  or take integer descriptors, and the first descriptor in a cage is 3.
  Opening an existing path with `O_CREAT` raises `EEXIST`. Opening a
  directory needs `O_DIRECTORY`. Access is checked against the "other"
  permission bits of the mode.
- Reading: `read(cage, fd, count)` and `pread(cage, fd, count, offset)`
  return `bytes`. `readv` and `preadv` take a list of sizes and return a
  list of chunks.
- Writing: `write` and `pwrite` take bytes and return the number of bytes
  written. `writev` and `pwritev` take a list of buffers and return the
  total written.
- Seeking: `lseek` accepts `SEEK_SET`, `SEEK_CUR`, `SEEK_END`, `SEEK_DATA`
  and `SEEK_HOLE`.
- Duplicating: `dup` and `dup2`. A duplicate shares the offset of the
  original descriptor.
- Directories: `mkdir`, `mkdirat` and `rmdir`. `opendir` returns a
  `DirStream`, and `readdir` returns a `DirEntry` or `None` at the end of
  the stream. Every directory lists `.` and `..` as entries.
- Links: `link`, `linkat` and `symlink` all add an entry that refers to an
  existing node. The entry is followed when a path is looked up.
- Removing: `unlink`, `rmdir` and `remove`. A directory that still has
  entries besides `.` and `..` cannot be removed, and neither can the root;
  both raise `EBUSY`. A removed node that is still open stays readable
  until its last descriptor is closed.
- Status: `stat`, `lstat` and `fstat` return a `StatResult` with the fields
  `st_dev`, `st_ino`, `st_mode`, `st_nlink`, `st_uid`, `st_gid`, `st_rdev`,
  `st_size`, `st_blksize` and `st_blocks`. The owner is always uid 501 and
  gid 20.

A failing call raises `OSError` with `errno` set to one of `ENOENT`,
`EEXIST`, `EISDIR`, `EACCES`, `EBADF`, `EMFILE`, `ENOMEM`, `EBUSY`,
`ENOTDIR`, `ENAMETOOLONG` or `EINVAL`. The subclass matches the code, for
example `FileNotFoundError`.

### Limits

- 1024 nodes in total, counting the `.` and `..` entries of each directory
- 1024 descriptors per cage
- cage ids from 0 to 127
- names of at most 63 characters
- paths of at most 10 components

### Loading a host folder

`imfs.host.load_folder(fs, cage_id, path)` copies a directory tree from the
host into the file system at the same path. The parent of that path must
already exist in the file system. Directories are created with mode 0.
Files keep the permission bits they have on the host. The function returns
the paths it created, in the order it created them.

## Command line

```
imfs
```

This starts an empty file system and creates `/firstfile.txt`. It then
prints the entries of the root directory.

```
imfs FOLDER [FOLDER ...] [--cage N]
```

This loads each host folder into the file system and prints the entries of
the root directory. `--cage` selects the cage whose descriptors are used,
and the default is 0. The command exits with status 1 and prints the error
when a call fails.

## What it does not do

- The tree lives only as long as the `FileSystem` object. Nothing is saved
  back to disk.
- There is no rename and no chown. Ownership and timestamps are not
  tracked.
- Links are not kept as path text. A link always refers to the node it was
  made for.