"""
Image metadata reading.

Wraps Pillow so the core timestamp extractor never imports it directly.
"""

from .reader import PillowExifReader

__all__ = ["PillowExifReader"]
