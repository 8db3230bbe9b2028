"""
UIAuto Relay Backend

Python backend relaying automation commands to instruments:
- Unix Domain Socket command proxy
- Chunked result reassembly
- Command line entry point
"""

__version__ = "1.0.0"
