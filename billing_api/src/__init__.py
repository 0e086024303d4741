"""
Billing API Package

Client for the telecom e-payment backend
"""

from .client import BillingApiClient
from .endpoints import BillingEndpoint, SUCCESS_CODE

__all__ = ["BillingApiClient", "BillingEndpoint", "SUCCESS_CODE"]
