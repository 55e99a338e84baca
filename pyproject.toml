[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ledgerapdu"
version = "0.1.0"
description = "APDU commands and answers, HID framing and asynchronous exchange helpers for Ledger hardware wallets"
requires-python = ">=3.10"
dependencies = []
keywords = ["ledger", "apdu", "hid", "hardware-wallet", "smart-card"]
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
    "Topic :: Security :: Cryptography",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["ledgerapdu"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
