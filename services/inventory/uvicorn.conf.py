import os

app = "main:app"
host = "0.0.0.0"
port = int(os.getenv("PORT", "9001"))
workers = int(os.getenv("UVICORN_WORKERS", str(max(2, (os.cpu_count() or 1)))))
# uvloop comes with uvicorn[standard]
loop = os.getenv("UVICORN_LOOP", "uvloop")
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
