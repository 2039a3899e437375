"""
Dashboard backend-for-frontend.
"""
