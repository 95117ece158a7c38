#!/usr/bin/env python3
"""
Back-office API Startup Script

Starts the FastAPI server for order sync, status push-back and backfill.
"""

import sys
from pathlib import Path

import uvicorn


def main():
    """Start the back-office API server."""
    print("Starting back-office API server...")
    print("Endpoints:")
    print("   POST /orders/sync                   WooCommerce order sync")
    print("   POST /orders/{id}/status            Status change + push-back")
    print("   POST /orders/backfill-unidentified  Resolve unidentified items")
    print("   POST /orders/reconcile-clients      Rebuild client aggregates")
    print("")
    print("Documentation will be available at:")
    print("   Swagger UI:  http://localhost:8000/docs")
    print("   ReDoc:       http://localhost:8000/redoc")
    print("")

    # Check for environment file
    env_file = Path(".env")
    if not env_file.exists():
        print("WARNING: No .env file found!")
        print("   Create a .env file with these variables (see generate_keys.py):")
        print("   DATABASE_URL=postgresql://...")
        print("   JWT_SECRET=your-secret-key-here")
        print("   TOKEN_ENCRYPTION_KEY=fernet-key")
        print("")

    try:
        uvicorn.run(
            "backoffice.main:app",
            host="0.0.0.0",
            port=8000,
            reload=True,
            reload_dirs=["backoffice"],
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\nShutting down back-office API server...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
