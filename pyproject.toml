[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pcskit"
version = "0.1.0"
description = "Building blocks for multi-connection HTTP downloads: range splitting, resumable state, rate limiting, checksums and multipart bodies."
requires-python = ">=3.10"
keywords = [
    "download",
    "http",
    "range",
    "resume",
    "multipart",
    "rate-limit",
    "checksum",
]
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
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "requests>=2.25",
    "psutil>=5.8",
    "wcwidth>=0.2",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
pcskit-download = "pcskit.downloader:main"

[tool.hatch.build.targets.wheel]
packages = ["pcskit"]

[tool.hatch.build.targets.sdist]
include = [
    "pcskit",
    "tests",
    "README.md",
]

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
ignore_missing_imports = true
