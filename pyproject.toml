[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ethlambda"
version = "0.1.0"
description = "Consensus node building blocks: SSZ types, fork-choice storage, wire encodings, metrics and an HTTP API"
requires-python = ">=3.10"
keywords = ["ethereum", "blockchain", "consensus", "protocol", "ssz", "snappy"]
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
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "starlette",
    "uvicorn",
]

[project.optional-dependencies]
test = [
    "pytest",
    "httpx",
]

[tool.hatch.build.targets.wheel]
packages = ["ethlambda"]

[tool.hatch.build.targets.sdist]
include = ["ethlambda", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
