"""
Medical Records Relay

A FastAPI-based service that stores patient report files with their metadata,
serves appointment and patient records, and keeps appointment statuses current.
"""

__version__ = "1.0.0"
