# src/murmur/__init__.py
"""Real-time messaging core: encrypted envelopes, presence, and socket fan-out."""
