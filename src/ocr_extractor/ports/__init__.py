"""Ports - interfaces for external dependencies."""

from .ocr import OCRPort
from .vault import VaultPort

__all__ = ["OCRPort", "VaultPort"]
