"""
Permit Agent: acquires permit information from government websites.
"""

__version__ = "0.1.0"
