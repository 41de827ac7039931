"""Gromo GPT chat server.

Importing the package populates ``os.environ`` from ``server/.env`` and
``server/.env.local`` so ``Settings`` sees developer values. A file named by
``GROMO_CHAT_ENV_FILE`` is applied last and wins over both.
"""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

_SERVER_DIR = Path(__file__).resolve().parent.parent

load_dotenv(_SERVER_DIR / ".env")
load_dotenv(_SERVER_DIR / ".env.local", override=True)

_explicit_env = os.getenv("GROMO_CHAT_ENV_FILE")
if _explicit_env:
    load_dotenv(_explicit_env, override=True)
