"""Load host directories into an in-memory file system and list its root."""

from __future__ import annotations

import argparse
import os
import stat as _stat
import sys
from functools import partial

from imfs.filesystem import O_CREAT, O_WRONLY, FileSystem

CHUNK_SIZE = 1024


def load_folder(fs, cage_id, path):
    """Copy the host directory at path into fs under the same path.

    Directories are created with mode 0 and files keep the permission bits
    of their host counterparts. Returns the paths created, in the order
    they were made.
    """
    path = path.rstrip("/") or path
    created: list[str] = []
    try:
        fs.mkdir(cage_id, path, 0)
    except FileExistsError:
        pass
    else:
        created.append(path)

    with os.scandir(path) as scan:
        entries = sorted(scan, key=lambda e: e.name)

    for entry in entries:
        if entry.name in (".", ".."):
            continue
        fullpath = f"{path}/{entry.name}"
        try:
            info = os.stat(fullpath)
        except OSError as exc:
            print(f"{fullpath}: {exc.strerror}", file=sys.stderr)
            continue

        if _stat.S_ISREG(info.st_mode):
            try:
                source = open(fullpath, "rb")
            except OSError:
                continue
            with source:
                fd = fs.open(cage_id, fullpath, O_CREAT | O_WRONLY, info.st_mode)
                try:
                    for chunk in iter(partial(source.read, CHUNK_SIZE), b""):
                        fs.write(cage_id, fd, chunk)
                finally:
                    fs.close(cage_id, fd)
            created.append(fullpath)
        elif _stat.S_ISDIR(info.st_mode):
            created.extend(load_folder(fs, cage_id, fullpath))

    return created


def _parse_args(argv):
    parser = argparse.ArgumentParser(
        prog="imfs",
        description="Load host folders into an in-memory file system and list its root.",
    )
    parser.add_argument("folders", nargs="*", help="host folders to load")
    parser.add_argument("--cage", type=int, default=0, help="cage whose descriptors are used")
    return parser.parse_args(argv)


def main(argv=None):
    """Run the command; returns the exit status."""
    args = _parse_args(argv)
    fs = FileSystem()
    cage_id = args.cage
    try:
        if args.folders:
            for folder in args.folders:
                load_folder(fs, cage_id, folder)
        else:
            fd = fs.open(cage_id, "/firstfile.txt", O_CREAT | O_WRONLY, 0o666)
            fs.close(cage_id, fd)

        stream = fs.opendir(cage_id, "/")
        try:
            while (entry := fs.readdir(cage_id, stream)) is not None:
                print(entry.name)
        finally:
            fs.close(cage_id, stream.fd)
    except OSError as exc:
        print(f"imfs: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())