"""Auth persistence — refresh-token records."""

from .tokens import RefreshToken, RefreshTokenStore
