"""API module for replica.

API layer:
- Validates inputs, reads/writes the session index
- Returns payloads for UI
- Forbidden: browser captures, model calls, pixel comparison
"""
