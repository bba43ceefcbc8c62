"""
availabilityfinder - find multi-day availability windows in a calendar.
"""

__version__ = "0.3.0"
