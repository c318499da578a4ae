"""
OAuth provider registry
Token/authorize endpoints and scopes for every connected service
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from app.core.config import settings

FATHOM = "fathom"
GOOGLE_CALENDAR = "google_calendar"
GOOGLE_FIT = "google_fit"

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class OAuthProvider:
    """Static OAuth configuration for one provider."""
    name: str
    authorize_url: str
    token_url: str
    scopes: List[str]
    client_id: Optional[str]
    client_secret: Optional[str]
    extra_authorize_params: Dict[str, str]

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def redirect_uri(self, app_url: str) -> str:
        return f"{app_url.rstrip('/')}/api/{self.name}/callback"


def get_providers() -> Dict[str, OAuthProvider]:
    """Build the provider table from current settings."""
    return {
        FATHOM: OAuthProvider(
            name=FATHOM,
            authorize_url=f"{settings.fathom_oauth_base_url}/authorize",
            token_url=f"{settings.fathom_oauth_base_url}/token",
            scopes=["public_api"],
            client_id=settings.fathom_client_id,
            client_secret=settings.fathom_client_secret,
            extra_authorize_params={},
        ),
        GOOGLE_CALENDAR: OAuthProvider(
            name=GOOGLE_CALENDAR,
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            scopes=[
                "https://www.googleapis.com/auth/calendar.readonly",
                "https://www.googleapis.com/auth/calendar.events.readonly",
            ],
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            extra_authorize_params={"access_type": "offline", "prompt": "consent"},
        ),
        GOOGLE_FIT: OAuthProvider(
            name=GOOGLE_FIT,
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            scopes=[
                "https://www.googleapis.com/auth/fitness.activity.read",
                "https://www.googleapis.com/auth/fitness.body.read",
                "https://www.googleapis.com/auth/fitness.location.read",
            ],
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            extra_authorize_params={"access_type": "offline", "prompt": "consent"},
        ),
    }


def get_provider(name: str) -> Optional[OAuthProvider]:
    return get_providers().get(name)
