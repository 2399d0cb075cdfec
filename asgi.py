"""
asgi.py -- Process entry point for Elewa.

The only place that reads Settings from the environment. Everything below
api.main receives that object explicitly.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
