"""
API routes for the recap service.
"""
