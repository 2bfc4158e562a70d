[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pxc"
version = "0.1.0"
description = "Command-line client and library for managing Portworx storage clusters"
requires-python = ">=3.10"
keywords = [
    "portworx",
    "kubernetes",
    "kubectl",
    "storage",
    "jwt",
    "snapshot-schedule",
    "cli",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
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
    "cryptography",
    "pyyaml",
    "protobuf",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
pxc = "pxc.component:main"

[tool.hatch.build.targets.wheel]
packages = ["pxc"]

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
ignore_missing_imports = true
