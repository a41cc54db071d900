[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sfhtml"
version = "0.3.0"
description = "Scan, read, edit and drive single-file HTML apps: anchored headers, unified-diff editing with history, live serving and browser control over CDP"
requires-python = ">=3.10"
keywords = ["html", "single-file", "ai", "editor", "diff", "cdp", "live-reload"]
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
    "Topic :: Text Processing :: Markup :: HTML",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "websocket-client>=1.6",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
]

[tool.hatch.build.targets.wheel]
packages = ["sfhtml"]

[tool.hatch.build.targets.sdist]
include = ["sfhtml", "tests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
