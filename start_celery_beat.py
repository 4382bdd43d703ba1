#!/usr/bin/env python3
"""
Start Celery Beat for SlotSwapper exchange expiry
"""

import sys
from app.celery_app import celery_app

if __name__ == "__main__":
    print("Starting Celery Beat for SlotSwapper...")
    print("This will expire exchange requests left pending past EXCHANGE_PENDING_TTL_HOURS")
    print("Press Ctrl+C to stop")
    
    try:
        # Start Celery Beat
        celery_app.start(['beat', '--loglevel=info'])
    except KeyboardInterrupt:
        print("\nStopping Celery Beat...")
        sys.exit(0) 