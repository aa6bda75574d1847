"""Chatline - tool-using chat assistant with concurrent titling."""

__version__ = "0.1.0"

from chatline.config import Config
from chatline.service import ChatService, build_service

__all__ = ["Config", "ChatService", "build_service", "__version__"]
