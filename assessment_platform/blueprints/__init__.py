"""
Assessment Sign-off Platform
Blueprint registry.
"""
