"""
Server startup script.
The database is initialized and settlement recovery runs in the app lifespan.
"""
import sys
import uvicorn

from binary_ledger.config import get_settings


if __name__ == "__main__":
    settings = get_settings()
    print(f"Starting {settings.app_name} on http://{settings.host}:{settings.port}")
    print(f"Price feed: {settings.price_feed}")
    print("Docs: GET /docs | Health: GET /health")

    try:
        uvicorn.run(
            "binary_ledger.main:app",
            host=settings.host,
            port=settings.port,
            reload=False,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("Server shutdown requested")
        sys.exit(0)
