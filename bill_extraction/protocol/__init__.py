"""
Protocol Module for the Bill Extraction System.

Message channels and the document message handler serving chunked
transfers and one-shot document processing.
"""

from .channel import Channel, QueueChannel, create_channel_pair
from .handler import DocumentHandler, HandlerSession

__all__ = [
    'Channel',
    'QueueChannel',
    'create_channel_pair',
    'DocumentHandler',
    'HandlerSession',
]
