"""
HTTP API for Newsdesk.
"""
