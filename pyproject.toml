[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "optwatch"
version = "0.1.0"
description = "Command-line argument parsing from help messages, and file system change notification"
requires-python = ">=3.10"
dependencies = [
    "watchdog",
]
keywords = ["command-line", "arguments", "usage", "help-message", "file-watching", "notification"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["optwatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
