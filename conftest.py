"""Root conftest: loads .env.test before any application module reads settings."""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env.test", override=False)
