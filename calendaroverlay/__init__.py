"""
Calendar overlay - merged free/busy view across Microsoft and Google calendars.
"""

__version__ = "0.3.0"
