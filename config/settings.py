"""
Mimasa Store - Centralized Configuration
==========================================
All environment variables and constants are loaded here.
No other module should call os.getenv() directly.
"""

import os
import sys
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


# ==========================================
# 🗄️ Database
# ==========================================
DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME")

    if not all([DB_USER, DB_PASSWORD, DB_HOST, DB_NAME]):
        print("[ERROR] Critical: Database config missing in .env (DATABASE_URL or DB_USER, DB_PASSWORD, DB_HOST, DB_NAME)")
        sys.exit(1)

    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


# ==========================================
# 🔐 Security
# ==========================================
SECRET_KEY = os.getenv("SECRET_KEY")

if not SECRET_KEY:
    print("[ERROR] Critical: SECRET_KEY missing in .env")
    sys.exit(1)

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 12  # 12 hours

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "cart_session")
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days


# ==========================================
# 💳 Payment Gateway (Razorpay)
# ==========================================
# The key secret never leaves the server: it signs gateway API calls and
# verifies payment signatures only.
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_API_URL = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")
RAZORPAY_TIMEOUT_SECONDS = float(os.getenv("RAZORPAY_TIMEOUT_SECONDS") or "15")
ACTIVE_GATEWAY = os.getenv("ACTIVE_GATEWAY", "razorpay")


# ==========================================
# 📧 Mail (Brevo)
# ==========================================
BREVO_API_KEY = os.getenv("BREVO_API_KEY", "")
BREVO_API_URL = os.getenv("BREVO_API_URL", "https://api.brevo.com/v3/smtp/email")
MAIL_SENDER_NAME = os.getenv("MAIL_SENDER_NAME", "Mimasa Foods")
MAIL_SENDER_EMAIL = os.getenv("MAIL_SENDER_EMAIL", "mimasafoods@gmail.com")
MERCHANT_MAILBOX = os.getenv("MERCHANT_MAILBOX", MAIL_SENDER_EMAIL)


# ==========================================
# 🛒 Store
# ==========================================
STORE_NAME = os.getenv("STORE_NAME", "Mimasa Foods")
CURRENCY = "INR"
ORDER_NUMBER_PREFIX = os.getenv("ORDER_NUMBER_PREFIX", "MIM")

# Fallbacks when cart_config rows are missing or unparseable
DEFAULT_SHIPPING_FEE = Decimal(os.getenv("DEFAULT_SHIPPING_FEE") or "50")
DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("DEFAULT_FREE_SHIPPING_THRESHOLD") or "500")
CART_CONFIG_TTL_SECONDS = int(os.getenv("CART_CONFIG_TTL_SECONDS") or "30")

# Checkout
PAYMENT_TIMEOUT_MINUTES = int(os.getenv("PAYMENT_TIMEOUT_MINUTES") or "30")
ORDER_COMMIT_MAX_ATTEMPTS = int(os.getenv("ORDER_COMMIT_MAX_ATTEMPTS") or "3")
RECONCILIATION_MAX_ATTEMPTS = int(os.getenv("RECONCILIATION_MAX_ATTEMPTS") or "10")


# ==========================================
# 🔧 App
# ==========================================
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
TEMPLATE_DIR = os.getenv("TEMPLATE_DIR", os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates"))

# Base URL used in emails and invoice footers
BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000")
