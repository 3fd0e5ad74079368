"""
main.py — exam session service entry point
"""

import argparse
import logging
import os
import sys
import threading
import webbrowser

import uvicorn

from config import BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE

# ── Logging ──────────────────────────────────────────────────────────────────
try:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )
except PermissionError:
    # log file locked or read-only: console only
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Zad Al-Hidaya exam session service")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--open", action="store_true", help="open the exam page in a browser")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = _parse_args(argv)
    os.chdir(BASE_DIR)

    from api.app import create_app

    app = create_app()
    url = f"http://{args.host}:{args.port}"
    logger.info(f"=== Exam session service starting on {url} ===")
    if args.open:
        # give uvicorn a moment to bind before the browser asks for the page
        threading.Timer(1.5, webbrowser.open, args=(url,)).start()
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
