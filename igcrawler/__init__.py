"""Crawl a profile's photo/video feed newer than a cutoff timestamp."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ig-crawler")
except PackageNotFoundError:
    __version__ = "0.0.0+dev"
