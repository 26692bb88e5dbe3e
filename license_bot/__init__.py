"""
License Bot - chat command front end for the license key server.

Maps chat commands (createlicense, revokelicense, listlicenses, lookup,
genkey, mylicense) to admin API calls and renders textual replies.
"""

__version__ = "0.1.0"
