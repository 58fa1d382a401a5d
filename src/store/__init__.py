"""Race storage layer.

This module persists canonical race blobs and rebuilds derived entry
and lap rows. It powers race loading and maintenance for the SDK.
"""
