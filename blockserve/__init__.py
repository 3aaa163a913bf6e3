"""A small Minecraft 1.15.2 protocol server with a stone platform world, chat and movement relay."""

__version__ = "0.1.0"