[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gamenet"
version = "0.1.0"
description = "A multi-worker TCP echo game server with length-prefixed packet sessions"
requires-python = ">=3.10"
dependencies = []
keywords = ["game server", "tcp", "networking", "asyncio", "sessions", "packets", "echo"]
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
    "Framework :: AsyncIO",
    "Topic :: Internet",
    "Topic :: Games/Entertainment",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
gamenet = "gamenet.server:main"

[tool.hatch.build.targets.wheel]
packages = ["gamenet"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
