#!/usr/bin/env python3
"""
Divar Alert Bot - CLI Entry Point
=================================

Runs the Telegram bot and the background scheduler that checks stored
Divar searches and sends each new post once.

Usage:
    # Start bot
    python scripts/run_bot.py

    # Dry run (notifications and replies printed to console)
    python scripts/run_bot.py --dry-run

    # Test Telegram configuration
    python scripts/run_bot.py --test-telegram 123456789
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from divar_alert import config
from divar_alert.alerts import send_test_alert
from divar_alert.errors import StorageError
from divar_alert.service import AlertBotService


def setup_logging(log_level: str = config.LOG_LEVEL, log_file: str = config.LOG_FILE):
    """Configure logging for the bot."""
    log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = project_root / log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Date-stamped log file (e.g., logs/divar_alert_2026-01-18.log)
    date_str = datetime.now().strftime("%Y-%m-%d")
    dated_log_file = log_path.parent / f"{log_path.stem}_{date_str}{log_path.suffix}"

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    file_handler = logging.FileHandler(dated_log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from requests library
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    root_logger.info(f"Logging to: {dated_log_file}")


def main():
    parser = argparse.ArgumentParser(
        description='Divar Alert Bot',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands understood by the bot:
  /alertSet    Set up a new alert (title, Divar search cURL, interval)
  /alertList   List alerts with delete buttons
  /cancel      Abort the running setup

Examples:
  python scripts/run_bot.py                          # Start bot
  python scripts/run_bot.py --dry-run                # Console output only
  python scripts/run_bot.py --test-telegram 12345    # Test Telegram setup
        """
    )

    parser.add_argument(
        '--db-path',
        default=config.DB_PATH,
        help=f'SQLite database path (default: {config.DB_PATH})'
    )

    parser.add_argument(
        '--sweep-interval',
        type=float,
        default=config.SWEEP_INTERVAL_SECONDS,
        help=f'Seconds between sweeps over due alerts (default: {config.SWEEP_INTERVAL_SECONDS})'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print messages to console instead of sending them to Telegram'
    )

    parser.add_argument(
        '--test-telegram',
        type=int,
        metavar='CHAT_ID',
        help='Send a test message to CHAT_ID to verify Telegram configuration'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=config.LOG_LEVEL.upper(),
        help=f'Log level (default: {config.LOG_LEVEL})'
    )

    args = parser.parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    if args.test_telegram is not None:
        print("Testing Telegram configuration...")
        if send_test_alert(args.test_telegram, dry_run=args.dry_run):
            print("Test message sent successfully!")
            sys.exit(0)
        print("Failed to send test message. Check TELEGRAM_BOT_TOKEN and TELEGRAM_API_URL.")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("DIVAR ALERT BOT")
    print("=" * 60)
    print(f"Database:       {args.db_path}")
    print(f"Telegram API:   {config.TELEGRAM_API_URL}")
    print(f"Sweep interval: {args.sweep_interval} seconds")
    print(f"Dry run:        {args.dry_run}")
    print(f"Log level:      {args.log_level}")
    print("=" * 60)

    if not args.dry_run and not config.TELEGRAM_BOT_TOKEN:
        print("\nWARNING: TELEGRAM_BOT_TOKEN not set!")
        print("Set it in .env or the environment, or use --dry-run.")
        sys.exit(1)

    try:
        service = AlertBotService.from_config(
            db_path=args.db_path,
            dry_run=args.dry_run,
            sweep_interval=args.sweep_interval,
        )
    except StorageError as e:
        logger.critical(f"Cannot initialize database: {e}")
        sys.exit(1)

    try:
        print("\nStarting bot...")
        print("Press Ctrl+C to stop\n")
        service.run()
    except KeyboardInterrupt:
        print("\n\nBot stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Bot error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
