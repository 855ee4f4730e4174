[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "imfs"
version = "0.1.0"
description = "An in-memory file system with per-cage descriptor tables and a POSIX-like call interface"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "in-memory", "posix", "file-descriptor", "sandbox"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
imfs = "imfs.host:main"

[tool.hatch.build.targets.wheel]
packages = ["imfs"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
