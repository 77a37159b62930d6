[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tradierlib"
version = "0.1.0"
description = "Client library for a brokerage REST and streaming API: watchlists, streaming sessions and live market events."
requires-python = ">=3.10"
keywords = [
    "brokerage",
    "market-data",
    "quotes",
    "streaming",
    "websocket",
    "watchlist",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "requests",
    "websocket-client",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tradierlib"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
