"""
TrustCore
=========

Trust-and-safety and reputation core for a community platform:
messaging abuse limits, content moderation, a moderation queue,
tiered reputation and community signal escalation.
"""

__version__ = "1.0.0"
