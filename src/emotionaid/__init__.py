"""
EmotionAid — local core of the chat companion desktop client.

Encrypted per-key storage, an expiring cache, and an offline action
queue that replays pending work against the chat API once the
connection comes back.
"""

__version__ = "0.1.0"

APP_NAME = "EmotionAid"
