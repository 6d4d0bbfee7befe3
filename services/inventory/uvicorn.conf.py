import os

# Inventory ledger; the gateway reaches it through INVENTORY_BASE_URL
app = "services.inventory.main:app"
host = os.getenv("HOST", "0.0.0.0")
port = int(os.getenv("PORT", "9001"))
workers = int(os.getenv("UVICORN_WORKERS", "2"))
loop = "uvloop"  # requires uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
