"""
Video recap generation.

Turns a long video and a short description into a highlight clip
with a generated narration script.
"""

__version__ = "0.1.0"
