"""On-chain event indexer for the multiplayer slice arena game"""

__version__ = "1.0.0"
