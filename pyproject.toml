[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "morpheus_bft"
version = "0.1.0"
description = "A single-process state machine for the Morpheus Byzantine fault-tolerant consensus protocol"
requires-python = ">=3.10"
keywords = ["consensus", "bft", "byzantine", "dag", "quorum-certificate", "morpheus", "simulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
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
    "pynacl>=1.5",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["morpheus_bft"]

[tool.hatch.build.targets.sdist]
include = ["morpheus_bft", "tests"]

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
