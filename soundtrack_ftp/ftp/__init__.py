"""FTP client engine for the Xbox soundtrack FTP client.

This module handles all FTP-related functionality:
- ControlChannel: Command/reply connection and login
- DirectoryState: Working directory tracking, MKD/RMD/CWD/DELE
- DataTransfer: Passive/active data connections for RETR/STOR/LIST
- ListingParser: Unix LIST and MLSD listing parsing
- OperationLog: In-memory diagnostic trail
- FTPSession: Serialized facade returning OperationResult objects
- Exceptions: FTP-specific error types
"""
