"""
orgauth

Session-based authentication with organization tenancy and role-based
access control, served over FastAPI.
"""

__version__ = "1.0.0"
