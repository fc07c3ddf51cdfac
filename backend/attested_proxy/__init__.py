"""
Attested Proxy

Single-endpoint reverse proxy in front of an attestation-backed inference API.
"""

__version__ = "0.1.0"
