"""
Auction mirror: keeps a relational copy of NFT ownership and English auction
lifecycle state in sync with on-chain events.
"""

__version__ = "1.0.0"
