[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sparsefact"
version = "1.0.0"
description = "Symbolic analysis and dense kernels for sparse symmetric indefinite LDL^T factorisation"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "sparse",
    "ldlt",
    "supernodal",
    "elimination-tree",
    "factorisation",
    "linear-algebra",
    "krylov",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sparsefact"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
