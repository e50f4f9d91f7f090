"""
Check that sign-in and email settings are filled in.

Usage: python scripts/check_oauth.py
Exit status 1 when a required value is missing or still a placeholder.
"""

import sys
from typing import List, Tuple

from quickquest.api.oauth import callback_url
from quickquest.config import Settings, get_settings
from quickquest.kernel.identity.types import OAuthProvider

PLACEHOLDER_MARKERS = ("your-", "YOUR_", "change-this")

REQUIRED = (
    "database_url",
    "secret_key",
    "resend_api_key",
    "google_client_id",
    "google_client_secret",
    "github_client_id",
    "github_client_secret",
    "frontend_url",
)


def is_placeholder(value: str) -> bool:
    return not value or any(marker in value for marker in PLACEHOLDER_MARKERS)


def check_settings(settings: Settings) -> List[Tuple[str, bool]]:
    """(ENV_NAME, ok) for every required value."""
    return [(name.upper(), not is_placeholder(getattr(settings, name))) for name in REQUIRED]


def main() -> int:
    settings = get_settings()

    print("\n=== OAUTH CONFIGURATION CHECK ===\n")
    print("1. Checking environment...")
    results = check_settings(settings)
    for name, ok in results:
        print(f"   {'OK     ' if ok else 'MISSING'} {name}")

    print("\n2. Callback URLs to register with each provider:")
    for provider in OAuthProvider:
        print(f"   {provider.value:<7} {callback_url(settings, provider)}")

    failed = [name for name, ok in results if not ok]
    if failed:
        print(f"\n{len(failed)} setting(s) missing or placeholder: {', '.join(failed)}")
        return 1
    print("\nAll settings present.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
