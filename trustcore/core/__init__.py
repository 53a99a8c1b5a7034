"""
TrustCore - Core Package
========================

Logger, configuration, constants and the shared error taxonomy.
"""
