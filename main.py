# main.py
"""
Process entry point for the KeyScan matching API.

Run with: uvicorn main:app
"""

# Re-export the FastAPI application
from api.main import app

__all__ = ["app"]
