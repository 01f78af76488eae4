"""Zcash light wallet: compact-block sync and zcashd payment submission."""

__version__ = "0.1.0"
