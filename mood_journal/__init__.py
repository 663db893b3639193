"""
Mood Journal - a local mood log with durable storage and notifications.

This package keeps a list of mood entries on disk, fires a one-shot local
notification whenever an entry is created or updated, and exposes both over
a small HTTP API and command-line client.
"""

__version__ = "0.1.0"
