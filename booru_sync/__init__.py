"""Sync faves and upvotes across boorus."""

__version__ = "1.4.0"
