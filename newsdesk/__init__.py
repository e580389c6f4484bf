"""
Newsdesk: multi-provider news ingestion with search and personalized feeds.
"""

__version__ = "0.1.0"
