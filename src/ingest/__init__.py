"""Data ingestion pipeline.

This module validates race payloads, runs format parsers on source files,
and hands canonical races to the store layer.
"""
