"""
Realtime Infrastructure Module

Push-style change notifications for preferences rows.
"""

from app.infrastructure.realtime.change_feed import (
    PreferencesChangeFeed,
    PreferencesSubscription,
)

__all__ = ["PreferencesChangeFeed", "PreferencesSubscription"]
