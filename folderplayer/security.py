"""Input validation for names, ids and URLs that end up on disk or on the wire."""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import re
from typing import Optional
from urllib.parse import urlsplit

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from folderplayer.logging import get_logger

logger = get_logger(__name__)


class SecurityValidator:
    """Security validation utilities."""

    # Playlist ids double as file names: "default" or "list_<millis>"
    PLAYLIST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

    ALLOWED_URL_SCHEMES = {"http", "https"}

    @staticmethod
    def validate_playlist_name(name: str) -> Optional[str]:
        """
        Validate and sanitize a playlist display name.

        Args:
            name: Playlist name to validate

        Returns:
            Sanitized name if valid, None otherwise
        """
        if not name:
            return None

        sanitized = "".join(c for c in name if ord(c) >= 32).strip()

        # Limit length
        if len(sanitized) > 100:
            sanitized = sanitized[:100].rstrip()

        if not sanitized:
            return None

        return sanitized

    @staticmethod
    def validate_playlist_id(playlist_id: str) -> bool:
        """
        Check that a playlist id is safe to use as a file name.

        Args:
            playlist_id: Id to validate

        Returns:
            True if the id is valid, False otherwise
        """
        if not playlist_id or not SecurityValidator.PLAYLIST_ID_PATTERN.match(playlist_id):
            logger.warning("Security: Invalid playlist id: %r", playlist_id)
            return False
        return True

    @staticmethod
    def normalize_server_url(url: str) -> Optional[str]:
        """
        Normalize a user-entered WebDAV server address.

        A missing scheme defaults to http. Anything that is not http(s) or
        has no host is rejected.

        Args:
            url: Address as typed by the user

        Returns:
            Normalized URL if valid, None otherwise
        """
        url = (url or "").strip()
        if not url:
            return None
        if not url.startswith("http"):
            url = f"http://{url}"

        parts = urlsplit(url)
        if parts.scheme not in SecurityValidator.ALLOWED_URL_SCHEMES or not parts.hostname:
            logger.warning("Security: Rejected server URL: %s", url)
            return None
        return url
