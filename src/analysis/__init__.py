"""Race annotation engine.

This package derives caution windows, class positions, green pace,
and chart annotations from canonical race data.
"""
