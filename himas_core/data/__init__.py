"""
Supabase client construction and patient report export.
"""
