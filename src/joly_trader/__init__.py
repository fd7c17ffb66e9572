"""Polymarket CLOB trading client: credential derivation, order signing and submission."""

__version__ = "0.1.0"
