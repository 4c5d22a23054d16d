"""
sessionguard: session token validation with IP binding and expiry policies.
"""

__version__ = "0.1.0"
