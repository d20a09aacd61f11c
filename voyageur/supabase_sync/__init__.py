"""
Supabase data access for the Voyageur Nest backend.
"""

from .supabase_client import SupabaseClient

__all__ = ['SupabaseClient']
