"""
Delta CLI state module.

Provides conversation persistence.
"""

from deltacli.state.session import SessionStore

__all__ = ["SessionStore"]
