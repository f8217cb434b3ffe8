"""
ASGI entry point: `uvicorn backend.server:app`
Loads .env from the project root before the app (and its config) is imported
"""

import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from dotenv import load_dotenv
load_dotenv(os.path.join(PROJECT_ROOT, '.env'), override=True)

from fastapi_server import app  # noqa: E402,F401
