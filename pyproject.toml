[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "limakit"
version = "0.1.0"
description = "Building blocks for managing Linux virtual machine instances: argument guessing, YAML edit expressions, downloads with caching, cloud-init data and SSH/scp helpers."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "virtual-machine",
    "vm",
    "cloud-init",
    "ssh",
    "scp",
    "downloader",
    "yq",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["limakit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
