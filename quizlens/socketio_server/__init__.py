"""Socket.IO bridge between the scan pipeline and overlay renderers.

Components:
- OverlayServer: pushes OverlayState to overlays and accepts scan/stop requests
"""

from .server import OverlayServer

__all__ = ['OverlayServer']
