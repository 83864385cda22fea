"""Consumption event log: ingest, list and summarize what users eat and drink."""

__version__ = "1.0.0"
