[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xdrsim"
version = "0.1.0"
description = "Local development runtime and forwarding proxy that tracks AI agents in an in-memory ledger"
requires-python = ">=3.10"
dependencies = [
    "aiohttp",
]
keywords = ["proxy", "agents", "payments", "simulator", "development", "aiohttp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
xdr = "xdrsim.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["xdrsim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
