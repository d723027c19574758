"""
smsbr — SMS Backup & Restore conversation loader.
"""

__version__ = '1.0.0'
