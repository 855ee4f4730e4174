import os
import stat

import pytest

from imfs.filesystem import O_RDONLY, O_RDWR, O_WRONLY, FileSystem, NodeType
from imfs.host import load_folder, main

CAGE_ID = 1
HELLO = b"hello world, this is a test file\n"


@pytest.fixture
def host_folder(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    folder = tmp_path / "test_folder"
    folder.mkdir()
    hello = folder / "hello.txt"
    hello.write_bytes(HELLO)
    hello.chmod(0o644)
    writable = folder / "test_write.txt"
    writable.write_bytes(b"")
    writable.chmod(0o666)
    sub = folder / "sub"
    sub.mkdir()
    nested = sub / "nested.txt"
    nested.write_bytes(b"nested")
    nested.chmod(0o644)
    big = folder / "big.bin"
    big.write_bytes(bytes(range(256)) * 12)
    big.chmod(0o644)
    return folder


@pytest.fixture
def loaded(host_folder):
    fs = FileSystem()
    created = load_folder(fs, CAGE_ID, "test_folder")
    return fs, created


def test_load_folder_reports_created_paths(loaded):
    _, created = loaded
    assert sorted(created) == sorted(
        [
            "test_folder",
            "test_folder/hello.txt",
            "test_folder/test_write.txt",
            "test_folder/sub",
            "test_folder/sub/nested.txt",
            "test_folder/big.bin",
        ]
    )
    assert created[0] == "test_folder"


def test_open_existing_file(loaded):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "/test_folder/hello.txt", O_RDONLY, 0)
    assert fd >= 3
    assert fs.close(CAGE_ID, fd) is None


def test_open_create(loaded):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "/test_folder/file_imfs.txt", os.O_CREAT | O_WRONLY, 0)
    fs.close(CAGE_ID, fd)
    assert fs.stat(CAGE_ID, "/test_folder/file_imfs.txt").st_size == 0


def test_open_missing_file(loaded):
    fs, _ = loaded
    with pytest.raises(FileNotFoundError):
        fs.open(CAGE_ID, "/test_folder/file_inexist.txt", O_RDONLY, 0)


def test_read_matches_host(loaded, host_folder):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "test_folder/hello.txt", O_RDONLY, 0o644)
    with open(host_folder / "hello.txt", "rb") as host:
        assert fs.read(CAGE_ID, fd, 7) == host.read(7)
    fs.close(CAGE_ID, fd)


def test_pread_does_not_move_offset(loaded):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "test_folder/hello.txt", O_RDONLY, 0o644)
    first = fs.pread(CAGE_ID, fd, 2, 0)
    second = fs.pread(CAGE_ID, fd, 2, 0)
    assert first == second == HELLO[:2]
    assert fs.read(CAGE_ID, fd, 2) == HELLO[:2]


def test_dup_shares_offset(loaded):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "test_folder/hello.txt", O_RDONLY, 0o644)
    dup_fd = fs.dup(CAGE_ID, fd)
    assert dup_fd != fd
    assert fs.read(CAGE_ID, fd, 5) == HELLO[:5]
    assert fs.read(CAGE_ID, dup_fd, 5) == HELLO[5:10]


def test_write_then_read_back(loaded):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "test_folder/test_write.txt", O_WRONLY, 0o644)
    assert fs.write(CAGE_ID, fd, b"hello world"[:10]) == 10
    fs.close(CAGE_ID, fd)
    fd = fs.open(CAGE_ID, "test_folder/test_write.txt", O_RDONLY, 0)
    assert fs.read(CAGE_ID, fd, 100) == b"hello worl"


def test_pwrite_overwrites_at_offset(loaded):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "test_folder/test_write.txt", O_RDWR, 0o644)
    assert fs.pwrite(CAGE_ID, fd, b"hello", 0) == 5
    assert fs.pwrite(CAGE_ID, fd, b"world", 0) == 5
    assert fs.read(CAGE_ID, fd, 5) == b"world"


def test_large_file_round_trip(loaded, host_folder):
    fs, _ = loaded
    expected = (host_folder / "big.bin").read_bytes()
    fd = fs.open(CAGE_ID, "test_folder/big.bin", O_RDONLY, 0)
    assert fs.read(CAGE_ID, fd, len(expected) + 10) == expected
    assert fs.fstat(CAGE_ID, fd).st_size == len(expected)


def test_nested_file_loaded(loaded):
    fs, _ = loaded
    fd = fs.open(CAGE_ID, "test_folder/sub/nested.txt", O_RDONLY, 0)
    assert fs.read(CAGE_ID, fd, 100) == b"nested"


def test_file_mode_comes_from_host(loaded):
    fs, _ = loaded
    result = fs.stat(CAGE_ID, "test_folder/hello.txt")
    assert stat.S_ISREG(result.st_mode)
    assert stat.S_IMODE(result.st_mode) == 0o644
    assert result.st_size == len(HELLO)


def test_directories_created_with_mode_zero(loaded):
    fs, _ = loaded
    result = fs.stat(CAGE_ID, "test_folder/sub")
    assert stat.S_ISDIR(result.st_mode)
    assert stat.S_IMODE(result.st_mode) == 0
    assert result.st_mode & 0o170000 == NodeType.DIR


def test_loading_twice_conflicts_on_files(loaded):
    fs, _ = loaded
    with pytest.raises(FileExistsError):
        load_folder(fs, CAGE_ID, "test_folder")


def test_missing_host_folder(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        load_folder(FileSystem(), CAGE_ID, "absent")


def test_trailing_slash_is_ignored(host_folder):
    fs = FileSystem()
    created = load_folder(fs, CAGE_ID, "test_folder/")
    assert created[0] == "test_folder"
    assert "test_folder/hello.txt" in created


def test_main_without_folders_lists_demo_file(capsys):
    assert main([]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [".", "..", "firstfile.txt"]


def test_main_with_folder_lists_it(host_folder, capsys):
    assert main(["test_folder", "--cage", "2"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [".", "..", "test_folder"]


def test_main_reports_errors(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["absent"]) == 1
    assert "imfs:" in capsys.readouterr().err