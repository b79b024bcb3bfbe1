"""Configuration module for the Xbox soundtrack FTP client.

This module handles application settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Application data directory discovery
- AppSettings: Settings dataclass
"""
