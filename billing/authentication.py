"""
Token authentication for the billing API.

Kept apart from the views so that DRF can import the authentication
classes listed in settings without pulling in view modules.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """``Authorization: Token <key>``; a stable import path for settings."""

    keyword = 'Token'
