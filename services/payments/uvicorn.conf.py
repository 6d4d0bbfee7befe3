import os

# Payment processor stub; the gateway reaches it through PAYMENTS_BASE_URL
app = "services.payments.main:app"
host = os.getenv("HOST", "0.0.0.0")
port = int(os.getenv("PORT", "9002"))
workers = int(os.getenv("UVICORN_WORKERS", "2"))
loop = "uvloop"  # requires uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
