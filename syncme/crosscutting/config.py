import os
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, Mapping, Optional
from pathlib import Path

from dotenv import dotenv_values

from syncme.application.matching import DEFAULT_SEARCH_LIMIT
from syncme.application.mutation import REMOTE_BATCH_LIMIT


DEFAULT_REDIRECT_URI = 'http://localhost:3001/callback'


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class SyncSettings:
    """Tunables of the reconciliation engine."""

    batch_limit: int = REMOTE_BATCH_LIMIT
    search_limit: int = DEFAULT_SEARCH_LIMIT
    market: Optional[str] = None
    match_workers: int = 1
    request_timeout: int = 15


def _int_setting(env: Mapping[str, str], name: str, default: int,
                 minimum: int = 1, maximum: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}")
    if maximum is not None:
        value = min(value, maximum)
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> SyncSettings:
    """Load engine settings from SYNCME_* environment variables."""
    env = os.environ if env is None else env
    market = (env.get('SYNCME_MARKET') or '').strip() or None
    return SyncSettings(
        batch_limit=_int_setting(env, 'SYNCME_BATCH_LIMIT', REMOTE_BATCH_LIMIT, maximum=REMOTE_BATCH_LIMIT),
        search_limit=_int_setting(env, 'SYNCME_SEARCH_LIMIT', DEFAULT_SEARCH_LIMIT, maximum=50),
        market=market,
        match_workers=_int_setting(env, 'SYNCME_MATCH_WORKERS', 1),
        request_timeout=_int_setting(env, 'SYNCME_REQUEST_TIMEOUT', 15),
    )


class SecretManager:
    """Manages application secrets and stored OAuth tokens."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize secret manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.home() / '.syncme'
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.tokens_file = self.config_dir / 'tokens.json'
        self.env_file = self.config_dir / '.env'

    def get_spotify_scopes(self) -> list:
        """Get minimal required Spotify scopes."""
        return [
            'playlist-read-private',      # Read private playlists
            'playlist-modify-public',     # Modify public playlists
            'playlist-modify-private',    # Create/modify private playlists
        ]

    def get_spotify_scope_string(self) -> str:
        """Get Spotify scopes as space-separated string."""
        return ' '.join(self.get_spotify_scopes())

    def get_missing_spotify_scopes(self, scopes: str) -> list:
        """Get list of missing required Spotify scopes."""
        provided_scopes = set((scopes or '').split())
        return [s for s in self.get_spotify_scopes() if s not in provided_scopes]

    def load_tokens(self) -> Dict[str, Any]:
        """Load tokens from tokens.json file."""
        if not self.tokens_file.exists():
            return {}

        try:
            with open(self.tokens_file, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"Failed to load tokens from {self.tokens_file}: {e}")

    def save_tokens(self, tokens: Dict[str, Any]) -> None:
        """Merge tokens into tokens.json file."""
        existing_tokens = self.load_tokens()
        existing_tokens.update(tokens)

        try:
            with open(self.tokens_file, 'w') as f:
                json.dump(existing_tokens, f, indent=2, ensure_ascii=False)
        except IOError as e:
            raise ConfigError(f"Failed to save tokens to {self.tokens_file}: {e}")

    def get_spotify_tokens(self) -> Optional[Dict[str, Any]]:
        """Get Spotify tokens from tokens.json."""
        return self.load_tokens().get('spotify')

    def save_spotify_tokens(self, access_token: str, refresh_token: Optional[str] = None,
                            expires_at: Optional[float] = None, scope: Optional[str] = None) -> None:
        """Save Spotify tokens obtained by the OAuth flow."""
        self.save_tokens({
            'spotify': {
                'access_token': access_token,
                'refresh_token': refresh_token,
                'expires_at': expires_at,
                'scope': scope,
                'updated_at': datetime.now().isoformat(),
            }
        })

    def clear_tokens(self) -> None:
        """Clear all stored tokens."""
        if self.tokens_file.exists():
            self.tokens_file.unlink()

    def load_env_vars(self) -> Dict[str, str]:
        """Load variables from the config directory .env, overridden by the process environment."""
        env_vars = {}
        if self.env_file.exists():
            env_vars.update({k: v for k, v in dotenv_values(self.env_file).items() if v is not None})
        for key in ('SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET', 'SPOTIFY_REDIRECT_URI'):
            if os.getenv(key):
                env_vars[key] = os.environ[key]
        return env_vars

    def get_spotify_client_config(self) -> Dict[str, str]:
        """Get Spotify client configuration."""
        env_vars = self.load_env_vars()

        client_id = env_vars.get('SPOTIFY_CLIENT_ID')
        client_secret = env_vars.get('SPOTIFY_CLIENT_SECRET')

        if not client_id:
            raise ConfigError("SPOTIFY_CLIENT_ID not found in environment")
        if not client_secret:
            raise ConfigError("SPOTIFY_CLIENT_SECRET not found in environment")

        return {
            'client_id': client_id,
            'client_secret': client_secret,
            'redirect_uri': env_vars.get('SPOTIFY_REDIRECT_URI') or DEFAULT_REDIRECT_URI,
        }

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        env_vars = self.load_env_vars()
        tokens = self.get_spotify_tokens() or {}
        return {
            'config_dir': str(self.config_dir),
            'tokens_file': str(self.tokens_file),
            'env_file': str(self.env_file),
            'has_client_id': bool(env_vars.get('SPOTIFY_CLIENT_ID')),
            'has_client_secret': bool(env_vars.get('SPOTIFY_CLIENT_SECRET')),
            'has_spotify_tokens': bool(tokens.get('access_token')),
            'missing_scopes': self.get_missing_spotify_scopes(tokens.get('scope') or '') if tokens else [],
        }
