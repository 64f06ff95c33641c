[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "retrospective"
version = "0.1.0"
description = "Mine coding-assistant conversation logs for learnings and vote on recalled memories"
requires-python = ">=3.10"
keywords = ["conversation", "logs", "learnings", "memory", "retrospective"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
retro = "retrospective.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["retrospective"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
