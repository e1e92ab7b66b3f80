"""Hex, selector and RLP helpers shared by the indexer."""
