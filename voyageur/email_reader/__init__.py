"""
OTA inbox ingestion over IMAP.
"""

from .gmail_client import GmailClient

__all__ = ["GmailClient"]
