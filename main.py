#!/usr/bin/env python3
"""
Bot Engine - Main Entry Point
Runs the FastAPI app with the trading loops.
"""
import uvicorn

from botengine.config import settings

if __name__ == "__main__":
    print("Starting Bot Engine...")
    print(f"API Docs: http://localhost:{settings.APP_PORT}/docs")
    print("Press Ctrl+C to stop.")
    uvicorn.run(
        "botengine.app:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=False,
    )
