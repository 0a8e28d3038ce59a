import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./screener.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
OPS_TOKEN = os.getenv("OPS_TOKEN")

# ✅ OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_PRICE_ID_STARTER = os.getenv("STRIPE_PRICE_ID_STARTER")
STRIPE_PRICE_ID_PRO = os.getenv("STRIPE_PRICE_ID_PRO")
STRIPE_PRICE_ID_BUSINESS = os.getenv("STRIPE_PRICE_ID_BUSINESS")

# ✅ CV analysis
ANALYSIS_BACKEND = os.getenv("ANALYSIS_BACKEND", "webhook")  # webhook | openai
CV_ANALYSIS_WEBHOOK_URL = os.getenv("CV_ANALYSIS_WEBHOOK_URL")
ANALYSIS_CALLBACK_SECRET = os.getenv("ANALYSIS_CALLBACK_SECRET")
ANALYSIS_DISPATCH_TIMEOUT_SECONDS = float(os.getenv("ANALYSIS_DISPATCH_TIMEOUT_SECONDS", "10"))
ANALYSIS_TIMEOUT_MINUTES = int(os.getenv("ANALYSIS_TIMEOUT_MINUTES", "5"))
ANALYSIS_WORKERS = int(os.getenv("ANALYSIS_WORKERS", "4"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

# ✅ Credits
CREDIT_CHARGE_POLICY = os.getenv("CREDIT_CHARGE_POLICY", "charge_on_attempt")  # charge_on_attempt | charge_on_success
PLAN_LIMIT_TABLE = os.getenv("PLAN_LIMIT_TABLE", "billing")  # billing | admin
BILLING_PERIOD_DAYS = int(os.getenv("BILLING_PERIOD_DAYS", "30"))

# ✅ Storage + uploads
STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage/cvs")
SIGNED_URL_TTL_SECONDS = int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600"))
UPLOAD_CONCURRENCY = int(os.getenv("UPLOAD_CONCURRENCY", "4"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# ✅ Public applications
PUBLIC_APPLY_RATE_LIMIT = int(os.getenv("PUBLIC_APPLY_RATE_LIMIT", "5"))
PUBLIC_APPLY_RATE_WINDOW_SECONDS = int(os.getenv("PUBLIC_APPLY_RATE_WINDOW_SECONDS", "60"))

# ✅ App
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
