[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "linkroute"
version = "0.1.0"
description = "A small link-state dynamic routing daemon with shortest-path route calculation and a TCP control interface"
requires-python = ">=3.10"
dependencies = []
keywords = ["routing", "ospf", "link-state", "dijkstra", "networking", "daemon"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
linkroute = "linkroute.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["linkroute"]

[tool.pytest.ini_options]
addopts = "-ra"
