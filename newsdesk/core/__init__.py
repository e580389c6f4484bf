"""
Cross-cutting helpers shared by the API, jobs and CLI.
"""
