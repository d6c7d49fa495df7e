"""Exception types raised by the metadata pipeline."""

from __future__ import annotations


class ExplorerError(Exception):
    """Base class for metadata explorer failures."""


class RendererError(ExplorerError):
    """The page renderer could not perform the requested operation."""


class ScrapeError(ExplorerError):
    """The in-page scrape produced no usable result."""


class ScrapeSchemaError(ScrapeError):
    """The scrape payload does not match the expected schema."""


class ImageFetchError(ExplorerError):
    """An image could not be downloaded."""


class ImageDecodeError(ExplorerError):
    """Downloaded bytes could not be decoded as an image."""
