"""Live Open Graph / Twitter Card metadata extraction for rendered pages."""

from .config import ExplorerConfig
from .coordinator import MetadataExplorer
from .models import HoverInfo, OGMetadata, PageIdentity, PublishedState, ResolvedIcon

__all__ = [
    "ExplorerConfig",
    "HoverInfo",
    "MetadataExplorer",
    "OGMetadata",
    "PageIdentity",
    "PublishedState",
    "ResolvedIcon",
]
