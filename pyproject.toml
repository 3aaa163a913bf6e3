[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blockserve"
version = "0.1.0"
description = "A small Minecraft 1.15.2 (protocol 578) server with a stone platform world, chat and player movement"
requires-python = ">=3.10"
dependencies = []
keywords = ["minecraft", "game server", "protocol", "varint", "multiplayer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
blockserve = "blockserve.server:main"

[tool.hatch.build.targets.wheel]
packages = ["blockserve"]

[tool.pytest.ini_options]
addopts = "-ra"
