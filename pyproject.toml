[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wingsd"
version = "0.1.0"
description = "Core pieces of a game-server control daemon: signed tokens, event bus, backups, crash handling and request checks."
requires-python = ">=3.10"
keywords = ["game server", "daemon", "backups", "jwt", "s3"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyjwt",
    "requests",
    "cachetools",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["wingsd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
