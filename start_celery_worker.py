#!/usr/bin/env python3
"""
Start Celery Worker for SlotSwapper
"""

import sys
from app.celery_app import celery_app

if __name__ == "__main__":
    print("Starting Celery Worker for SlotSwapper...")
    print("This will process exchange expiry tasks")
    print("Press Ctrl+C to stop")
    
    try:
        # Start Celery Worker
        celery_app.start(['worker', '--loglevel=info'])
    except KeyboardInterrupt:
        print("\nStopping Celery Worker...")
        sys.exit(0) 