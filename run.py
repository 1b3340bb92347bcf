#!/usr/bin/env python3
"""
Startup script for the Telegram tool bridge
"""
import sys
import uvicorn

from config import load_settings
from errors import ConfigError


def check_env():
    """Load settings from the environment / .env and report what is missing"""
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"❌ {e}")
        print("Please set the following variables (or put them in a .env file):")
        print("TG_APP_ID=your_app_id")
        print("TG_APP_HASH=your_app_hash")
        print("TG_SESSION_FILE=optional/path/to/session.json")
        return None

    print("✅ Environment configuration looks good!")
    return settings


def main():
    print("🚀 Starting Telegram tool bridge...")

    settings = check_env()
    if settings is None:
        sys.exit(1)

    print(f"📡 Server will run on http://{settings.host}:{settings.port}")
    print(f"🔐 Session file: {settings.session_file}")
    print(f"🔄 Auto-reload: {'enabled' if settings.reload else 'disabled'}")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        uvicorn.run(
            "main:app",
            host=settings.host,
            port=settings.port,
            reload=settings.reload,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")


if __name__ == "__main__":
    main()
