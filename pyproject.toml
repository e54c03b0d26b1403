[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bladeoperator"
version = "1.7.2"
description = "Chaos experiment operator core: blade resource model, reconciliation, pod mutation and file-system fault rules"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "chaos-engineering",
    "fault-injection",
    "kubernetes",
    "operator",
    "reconciler",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bladeoperator"]

[tool.hatch.build.targets.sdist]
include = ["bladeoperator", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
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
