"""
API layer.
"""
