"""Preview channel hosting: channel APIs, the registry and URL extraction."""

from previewflow.hosting.channels import (
    ChannelApi,
    FirebaseCliChannelApi,
    PreviewChannel,
    generate_channel_id,
)
from previewflow.hosting.registry import ChannelRegistry, EvictionResult, SiteChannels
from previewflow.hosting.rest import HostingRestChannelApi
from previewflow.hosting.urls import UrlExtraction, UrlExtractor, extract_urls

__all__ = [
    "ChannelApi",
    "ChannelRegistry",
    "EvictionResult",
    "FirebaseCliChannelApi",
    "HostingRestChannelApi",
    "PreviewChannel",
    "SiteChannels",
    "UrlExtraction",
    "UrlExtractor",
    "extract_urls",
    "generate_channel_id",
]
