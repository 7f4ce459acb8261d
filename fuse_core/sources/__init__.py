#!/usr/bin/env python
#
# OpenFuse - Sources Package
# © 2025 Shinichi Morita (shin3tky)
#

"""
Frame sources feeding bursts into the coordinator.

Available sources:
    - LiveFrameSource: wraps a capture callable, delivers frames from worker
      threads in completion order
    - DirectoryFrameSource: reads raw files from a folder in name order
"""

from .base import FrameReceiver, FrameSource
from .directory import DirectoryFrameSource
from .live import LiveFrameSource

__all__ = [
    "FrameReceiver",
    "FrameSource",
    "DirectoryFrameSource",
    "LiveFrameSource",
]
