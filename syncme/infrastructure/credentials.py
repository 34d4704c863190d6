import logging
import time
from typing import Optional

from syncme.crosscutting.config import ConfigError, SecretManager


logger = logging.getLogger(__name__)


class StaticCredentials:
    """Credential provider holding a fixed access token."""

    def __init__(self, access_token: Optional[str]):
        self._access_token = (access_token or '').strip() or None

    def get_access_token(self) -> Optional[str]:
        return self._access_token


class TokenStoreCredentials:
    """Credential provider reading the token saved by the OAuth callback.

    The token file is read on every call, so a refresh performed by the OAuth
    side is picked up without restarting the engine. An expired token is
    reported as absent.
    """

    def __init__(self, secret_manager: SecretManager, clock=time.time):
        self.secret_manager = secret_manager
        self._clock = clock

    def get_access_token(self) -> Optional[str]:
        try:
            tokens = self.secret_manager.get_spotify_tokens()
        except ConfigError as e:
            logger.warning(f"Cannot read stored Spotify tokens: {e}")
            return None

        if not tokens or not tokens.get('access_token'):
            return None

        expires_at = tokens.get('expires_at')
        if expires_at is not None and float(expires_at) <= self._clock():
            logger.warning("Stored Spotify access token has expired")
            return None

        return tokens['access_token']
