"""Constants for mail-ledger."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".mail-ledger"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
STATE_PATH = CONFIG_DIR / "state.json"
MIRROR_DB_PATH = CONFIG_DIR / "mirror.db"

# --- Google OAuth ---
SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "openid",
]
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
TOKEN_EXPIRY_MARGIN_SECONDS = 300  # treat tokens as expired 5 minutes early
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# --- Gmail API ---
PAGE_SIZE = 100  # messages per list page (provider maximum for our use)
MAX_SEARCH_RESULTS = 500  # overall cap on listed message ids per run
DETAIL_BATCH_SIZE = 10  # messages fetched together per batch
LIST_TIMEOUT_SECONDS = 12.0
DETAIL_TIMEOUT_SECONDS = 10.0
LIST_RETRIES = 2
DETAIL_RETRIES = 1

# --- Resilience ---
BACKOFF_BASE_SECONDS = 0.4
BACKOFF_MAX_SECONDS = 2.5
BACKOFF_JITTER_SECONDS = 0.25
CIRCUIT_FAILURE_THRESHOLD = 4
CIRCUIT_COOLDOWN_SECONDS = 30.0
MAX_DETAIL_FAILURE_RATE = 0.5

# --- Sync ---
MAX_PROCESSED_EMAIL_IDS = 5000
MANUAL_SYNC_MIN_INTERVAL_SECONDS = 30
CONNECTIVITY_PROBE = ("www.googleapis.com", 443)

# --- Amounts (CLP) ---
MIN_AMOUNT = 100  # smallest accepted amount for phrase / currency matches
MIN_BARE_AMOUNT = 1000  # smallest accepted amount for bare grouped numbers

# --- Rules ---
MAX_RULE_VALUE_LENGTH = 120
MAX_RULES_PER_LIST = 200
MIN_DAYS_TO_SCAN = 1
MAX_DAYS_TO_SCAN = 365
DEFAULT_DAYS_TO_SCAN = 90

# --- Events ---
CATEGORIES = ["card", "credit", "service", "transfer", "income"]
DIRECTIONS = ["income", "expense"]
CATEGORY_LABELS = {
    "card": "Card payment",
    "credit": "Credit",
    "service": "Service",
    "transfer": "Transfer",
    "income": "Income",
}
CATEGORY_ICONS = {
    "card": "credit_card",
    "credit": "account_balance",
    "service": "receipt_long",
    "transfer": "swap_horiz",
    "income": "payments",
}
CATEGORY_COLORS = {
    "card": "dark_orange",
    "credit": "yellow",
    "service": "blue",
    "transfer": "magenta",
    "income": "green",
}
MAX_DESCRIPTION_LENGTH = 50
MONTH_ABBREVIATIONS = [
    "ene", "feb", "mar", "abr", "may", "jun",
    "jul", "ago", "sept", "oct", "nov", "dic",
]

# --- Known financial senders (Chile) ---
DEFAULT_FINANCIAL_SENDERS = [
    # Banks
    "banco de chile", "bancoestado", "santander", "bci", "scotiabank", "itau",
    "falabella", "security", "bice", "consorcio", "ripley",
    # Payments and fintech
    "transbank", "mercadopago", "mercadolibre", "paypal", "tenpo", "mach", "fpay", "flow",
    # Utilities
    "enel", "chilectra", "aguas andinas", "essbio", "esval", "metrogas", "lipigas", "abastible",
    # Telecoms
    "entel", "movistar", "claro", "wom", "vtr", "gtd", "mundo",
    # Apps and delivery
    "rappi", "uber", "didi", "cornershop", "pedidosya",
    # Retail and others
    "amazon", "netflix", "spotify", "apple", "google", "paris", "lider", "jumbo",
    "sodimac", "easy", "cencosud",
]
