"""
Billing API endpoints and fixed request headers
"""

from enum import Enum


class BillingEndpoint(str, Enum):
    """Routes of the telecom billing API"""
    LOGIN = "/api/auth/login"
    ACCOUNT = "/api/compte"

    CHECK_ND_FACT = "/api/epay/checkNdFact"
    PAY_FACT = "/api/epay/paiementFact"

    CHECK_ND_LTE = "/api/epay/checkNdLte"
    PAY_LTE = "/api/epay/paiementLte"

    CHECK_ND_ADSL = "/api/epay/checkNdAdsl"
    PAY_ADSL = "/api/epay/paiementAdsl"

    VOUCHER_ADSL = "/api/epay/voucherAdsl"
    VOUCHER_LTE = "/api/epay/voucherLte"
    VOUCHER_SCAN = "/api/epay/voucherScan"


DEFAULT_HOST = "mobile-pre.at.dz"

# The API only answers clients that identify as the mobile app
DEFAULT_USER_AGENT = "Dart/2.18 (dart:io)"

SUCCESS_CODE = "0"


def default_headers(user_agent: str = DEFAULT_USER_AGENT) -> dict:
    return {
        "Content-Type": "application/json",
        "accept-encoding": "gzip",
        "user-agent": user_agent,
    }
