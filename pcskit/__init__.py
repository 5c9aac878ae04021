"""Multi-connection HTTP download toolkit: ranges, resumable state, rate limits, checksums and multipart bodies."""

__version__ = "0.1.0"