"""
API endpoint constants and configuration.

This module contains the agronomic analysis service endpoint paths and related
constants. Centralizing these values makes it easy to swap out the provider.
"""


class AnalysisAPIEndpoints:
    """Agronomic analysis service endpoint paths."""

    ANALYSES = "/analyses"


class APIConstants:
    """General API configuration constants."""

    # HTTP Headers
    CONTENT_TYPE_JSON = "application/json"

    # Status codes surfaced when the request never reached the service
    MISSING_KEY_STATUS = 401
    UNREACHABLE_STATUS = 502
