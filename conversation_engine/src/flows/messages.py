"""
User-facing texts of the payment bot
"""

from typing import Any, Dict, Optional

WELCOME = (
    "👋 Welcome to the Payment Bot!\n\n"
    "📱 Available commands:\n\n"
    "🔐 /login  → Login to your account\n"
    "📞 /fact → Pay your PSTN (Landline)\n"
    "📡 /4g   → Pay your 4G LTE\n"
    "🌐 /adsl → Pay your ADSL or FTTH\n"
    "🎟️ /voucher → Apply ADSL/FTTH voucher\n"
    "📸 /scanvoucher → Scan voucher\n"
    "❌ /cancel → Stop current operation\n\n"
    "✨ Simply pick the appropriate command to start."
)

UNKNOWN_COMMAND = "🤔 Unknown command. Send /start to see what I can do."

CANCELLED = "✅ Operation cancelled successfully."
NOTHING_TO_CANCEL = "❌ There's nothing to cancel."

TEXT_ONLY = "⚠️ Please send text messages only."
SCAN_FIRST = "⚠️ Please use /scanvoucher command first to scan a voucher."
SCAN_PROCESSING = "🔍 Processing voucher image..."

GENERIC_ERROR = "❌ An error occurred: {error}\n\n🔄 Please try again."

# Prompts
PROMPT_LOGIN_ND = "📱 Please enter your phone number (nd):"
PROMPT_PASSWORD = "🔑 Please enter your password:"
PROMPT_PSTN_ND = "📞 Please enter your PSTN invoice number (nd):"
PROMPT_LTE_ND = "📡 Enter your 4G LTE number (nd):"
PROMPT_ADSL_ND = "🌐 Enter your ADSL/FTTH number (nd):"
PROMPT_AMOUNT = "💰 Please enter the payment amount:"
PROMPT_VOUCHER_ND = "🎟️ Please enter the ADSL/FTTH number (nd):"
PROMPT_VOUCHER_CODE = "🎟️ Please enter the voucher code:"
PROMPT_SCAN = "📸 Please send the voucher image or enter the voucher code:"
PROMPT_SERVICE_ND = "📱 Please enter your service number (nd):"

# Validation errors (re-prompts)
INVALID_LOGIN_ND = "⚠️ Please enter your phone number (nd):"
INVALID_PASSWORD = "⚠️ Password cannot be empty. Please enter your password:"
INVALID_PSTN_ND = "⚠️ Invalid PSTN invoice number! Please enter digits only."
INVALID_LTE_ND = "⚠️ Invalid 4G LTE number! Please enter digits only."
INVALID_ADSL_ND = "⚠️ Invalid ADSL/FTTH number! Please enter digits only."
INVALID_SERVICE_ND = "⚠️ Invalid service number! Please enter digits only."
INVALID_AMOUNT = "⚠️ Invalid amount! Please enter a positive number (e.g., 1000.50)."
INVALID_VOUCHER_CODE = "⚠️ Voucher code cannot be empty. Please enter the voucher code:"

# Payment outcomes
PAYMENT_SUCCESS = "✅ {label} Payment link: {message}"
PAYMENT_FAILED = "❌ {label} Payment failed: {raw}"
PAYMENT_CHECK_FAILED = "❌ {label} Invoice not found or check error: {detail}"
PAYMENT_ERROR = "❌ {label}: Something went wrong during payment processing: {error}"

# Voucher outcomes
VOUCHER_SUCCESS = "✅ {label} Voucher recharge successful!"
VOUCHER_REJECTED = "❌ {label} Voucher recharge failed. Please try again."
VOUCHER_RESULT = "❌ {label} Voucher application result: {detail}"
VOUCHER_CHECK_FAILED = "❌ {label} Number check failed: {detail}"
VOUCHER_NOT_FOUND = "❌ {label} Number not found or check error: {raw}"
VOUCHER_ERROR = "❌ Failed to apply voucher: {error}"

# Voucher scan
SCAN_FOUND_ADSL = "✅ Found ADSL/FTTH voucher!\n\n🎟️ Code: {code}\n\n" + PROMPT_SERVICE_ND
SCAN_FOUND_LTE = "✅ Found 4G LTE voucher!\n\n🎟️ Code: {code}\n\n" + PROMPT_SERVICE_ND
SCAN_CODE_ACCEPTED = "📱 Please enter your service number (nd) to apply the voucher:"
SCAN_INVALID_CODE = "❌ Invalid voucher code. Please try again."
SCAN_UNREADABLE = "❌ Could not read voucher from image.\n\n🔄 Please try again or enter the code manually."
SCAN_IMAGE_ERROR = "❌ Failed to process the voucher image.\n\n🔄 Please try again or enter the code manually."
SCAN_ERROR = "❌ Voucher scan failed: {error}"

# Login
LOGIN_FAILED = "❌ Login failed. Please check your credentials and try again."
LOGIN_ERROR = "❌ Login failed: {error}"
LOGIN_NO_ACCOUNT = "✅ Login successful!\n\n⚠️ Account information is not available right now."


def format_account(account: Dict[str, Any]) -> str:
    """Account summary shown after a successful login"""

    def value(key: str, default: str = "N/A") -> Any:
        found: Optional[Any] = account.get(key)
        return found if found not in (None, "") else default

    return "\n".join([
        "✅ Login successful!\n",
        "👤 Account Information:",
        f"📱 Number: {value('nd')}",
        f"📍 Address: {value('adresse')}",
        f"👤 Name: {value('nom')}",
        f"👤 First name: {value('prenom')}",
        f"📧 Email: {value('email')}",
        f"🆔 Ncli: {value('ncli')}",
        f"📊 Number of invoices: {value('nb', '0')}",
    ])
