"""Timing export parsers.

This package tokenizes vendor exports and maps them onto the
canonical race model through a registry of format parsers.
"""
