"""Xbox soundtrack FTP client.

Synchronous FTP session with an operation log, used to manage
soundtrack files on an original Xbox.
"""

__version__ = "1.0.0"
