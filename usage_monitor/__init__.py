"""
AI Usage Monitor.

Windowed token-usage reports (today, last 7 days, last 30 days) built from
the local Claude and Codex usage logs.
"""

__version__ = "0.1.0"
