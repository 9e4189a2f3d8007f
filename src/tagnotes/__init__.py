"""
tagnotes - a personal note manager with tags.
This package implements the note/tag state engine (a store that keeps notes
and tags consistent, plus a filter/sort query engine), pluggable key-value
persistence, and a Model Context Protocol server exposing it as tools.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tagnotes")
except PackageNotFoundError:
    __version__ = "0.3.0"
