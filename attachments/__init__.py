"""Attachments gateway: name-addressed retrieval and gated writes in front of tusd."""

__version__ = "0.1.0"
