#!/usr/bin/env python3
"""
Saxon Bank Entry Point

Starts the FastAPI server with the configured storage backend.
"""

import sys

import uvicorn

from saxon_bank.config import get_config


if __name__ == "__main__":
    config = get_config()

    print("🏦 Starting Saxon Bank...")
    print(f"💾 Storage backend: {config.storage_backend}")
    print("🔒 Audit trail active")
    print("💰 All financial calculations use Decimal precision")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        uvicorn.run(
            "saxon_bank.api:create_app",
            factory=True,
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down Saxon Bank...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
