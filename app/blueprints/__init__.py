"""
Demande Lifecycle Service
Blueprint registry.
"""
