"""An xv6-style file system: disk images, buffer cache, log, inodes, files and user commands."""

__version__ = "0.1.0"