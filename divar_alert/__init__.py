"""
Divar Alert
===========

Telegram bot that watches Divar searches and notifies each new post once.
"""

__version__ = "0.1.0"
