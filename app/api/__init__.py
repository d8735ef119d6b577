# app/api/__init__.py
"""
API package bootstrap.

- no re-exports here
- routers are mounted by `app/main.py`
"""

__all__ = []
