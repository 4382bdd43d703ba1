#!/usr/bin/env python3
"""
Launcher for the SlotSwapper API.
Run this from the root directory to start the application.
"""

import logging
import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")

if __name__ == "__main__":
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("🚀 Starting SlotSwapper API with auto-reload...")
    print(f"📖 API Documentation: http://localhost:{PORT}/docs")
    print(f"🔍 Health Check: http://localhost:{PORT}/health")
    print("🛑 Press Ctrl+C to stop the server")
    print("-" * 50)

    # Use import string format for reload to work properly
    uvicorn.run(
        "app.main:app",
        host=HOST,
        port=PORT,
        reload=True,
        reload_dirs=["app"],  # Watch the app directory for changes
        log_level=LOG_LEVEL
    )
