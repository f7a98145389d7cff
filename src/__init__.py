# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
# SynFrame - Synology Photos Slideshow Service
"""
SynFrame pulls photos from a Synology Photos server, orders them, keeps a
bounded disk cache warm, and feeds a kiosk display one image at a time.
"""

__version__ = "1.0.0"
__author__ = "SynFrame"
