"""Utility module for the Xbox soundtrack FTP client.

This module provides cross-cutting utilities:
- Logging: Configured logging with PII redaction
- Validators: Input validation for host, port, timeouts, remote names
"""
