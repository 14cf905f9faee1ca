"""
Anime Notifier - Get notified when watched anime episodes are released.

Polls torrent tracker RSS feeds, matches new releases against a
watch-list and sends push, Discord and desktop notifications.
"""

__title__ = "anime-notifier"
__version__ = "1.0.0"
