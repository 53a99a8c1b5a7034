"""
TrustCore - API Package
=======================

HTTP API server for TrustCore.
"""

from trustcore.services.api.api import TrustCoreAPI
from trustcore.services.api.middleware import ACTOR_HEADER, get_client_ip

__all__ = ["TrustCoreAPI", "ACTOR_HEADER", "get_client_ip"]
