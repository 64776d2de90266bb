[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tripguard"
version = "0.1.0"
description = "Risk controls, throttling, blacklisting and user account management for a group-travel platform, stored in SQLite"
requires-python = ">=3.10"
dependencies = []
keywords = ["risk", "throttling", "blacklist", "travel", "users", "approvals", "sqlite"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tripguard"]

[tool.hatch.build.targets.sdist]
include = ["tripguard", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
