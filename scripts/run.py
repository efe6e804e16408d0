#!/usr/bin/env python3
"""Stockwatch — Application Runner.

Performs pre-flight checks and launches the main application.

Usage:
    python scripts/run.py
    python scripts/run.py --once
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

BANNER = r"""
╔══════════════════════════════════════════════════════════╗
║                                                          ║
║              Stockwatch v1.0                             ║
║       Daily Inventory Alerts over Telegram               ║
║                                                          ║
╚══════════════════════════════════════════════════════════╝
"""

REQUIRED_ENV_VARS = [
    "TELEGRAM_BOT_TOKEN",
    "STOCKWATCH_JWT_SECRET",
]

REQUIRED_FILES = [
    "config/settings.yaml",
]


def preflight_checks() -> bool:
    """Run pre-flight checks before starting the application.

    Checks:
      - .env file exists
      - Required environment variables are set
      - Required config files exist
      - data/ and logs/ directories exist (creates them)

    Returns:
        True if all checks pass, False otherwise.
    """
    os.chdir(str(PROJECT_ROOT))
    ok = True

    env_path = PROJECT_ROOT / ".env"
    if not env_path.exists():
        print("❌ .env file not found!")
        print("   Copy .env.example to .env and fill in your bot token and token secret.")
        ok = False
    else:
        from dotenv import load_dotenv
        load_dotenv(env_path)
        print("✅ .env loaded")

    for var in REQUIRED_ENV_VARS:
        val = os.environ.get(var, "")
        if not val or val in ("your_key_here", "change_me", "test"):
            print(f"❌ {var} not set or invalid in .env")
            ok = False
        else:
            masked = val[:6] + "..." + val[-4:] if len(val) > 10 else "***"
            print(f"✅ {var} = {masked}")

    for f in REQUIRED_FILES:
        if not (PROJECT_ROOT / f).exists():
            print(f"❌ {f} not found!")
            ok = False
        else:
            print(f"✅ {f} exists")

    for d in ("data", "logs"):
        (PROJECT_ROOT / d).mkdir(exist_ok=True)
        print(f"✅ {d}/ directory ready")

    return ok


def main() -> None:
    """Entry point: run checks then start the application."""
    print(BANNER)

    print("═══ Pre-flight Checks ═══\n")
    if not preflight_checks():
        print("\n❌ Pre-flight checks failed! Fix the issues above and try again.")
        sys.exit(1)

    print("\n✅ All checks passed!\n")
    print("═══ Starting Stockwatch ═══\n")

    from stockwatch.main import main as app_main
    sys.exit(app_main(sys.argv[1:]))


if __name__ == "__main__":
    main()
