"""
Profile Tree API Routes Package
Provides profile tree endpoints.
"""

from profile_tree.routes import profiles

__all__ = ['profiles']
