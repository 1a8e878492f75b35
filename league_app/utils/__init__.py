"""
Shared helpers for the league application.
"""
