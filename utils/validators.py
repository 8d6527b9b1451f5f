import re
from typing import Optional, Tuple

from models.stream import Platform


class UsernameValidator:
    @staticmethod
    def validate_twitch_username(username: str) -> Tuple[bool, str]:
        """
        Validate Twitch username according to Twitch rules:
        - Length between 4 and 25 characters
        - Only letters, numbers, and underscores
        - Must begin with a letter or number
        """
        if not 4 <= len(username) <= 25:
            return False, "Twitch username must be between 4 and 25 characters long"

        if not re.match(r'^[a-zA-Z0-9][a-zA-Z0-9_]*$', username):
            return False, "Twitch username can only contain letters, numbers, and underscores"

        return True, "Valid username"

    @staticmethod
    def validate_kick_username(username: str) -> Tuple[bool, str]:
        """
        Validate Kick slug:
        - Length between 3 and 25 characters
        - Only letters, numbers, underscores and dashes
        """
        username = username.lower()

        if not 3 <= len(username) <= 25:
            return False, "Kick username must be between 3 and 25 characters long"

        if not re.match(r'^[a-z0-9_-]*$', username):
            return False, "Kick username can only contain letters, numbers, underscores and dashes"

        return True, "Valid username"

    @staticmethod
    def validate_username(platform: Platform, username: str) -> Tuple[bool, str]:
        """Validate username based on platform"""
        if platform is Platform.TWITCH:
            return UsernameValidator.validate_twitch_username(username)
        elif platform is Platform.KICK:
            return UsernameValidator.validate_kick_username(username)
        else:
            return False, f"Unsupported platform: {platform}"


class Validators:
    """Validation utilities for subscription settings"""

    PROFILE_PATTERNS = {
        Platform.TWITCH: r'^(?:https?:\/\/)?(?:www\.)?twitch\.tv\/([a-zA-Z0-9_]{4,25})\/?$',
        Platform.KICK: r'^(?:https?:\/\/)?(?:www\.)?kick\.com\/([a-zA-Z0-9_-]{3,25})\/?$',
    }

    @staticmethod
    def extract_username(platform: Platform, value: str) -> Optional[str]:
        """Accept either a bare username or a profile URL and return the username"""
        if not value:
            return None

        value = value.strip().lstrip('@')
        match = re.match(Validators.PROFILE_PATTERNS[platform], value)
        if match:
            return match.group(1).lower()

        is_valid, _ = UsernameValidator.validate_username(platform, value)
        return value.lower() if is_valid else None

    @staticmethod
    def validate_message(message: Optional[str]) -> Tuple[bool, Optional[str]]:
        """
        Validate notification message template
        Returns: (is_valid, error_message)
        """
        if message is None:
            return True, None

        if not message.strip():
            return False, "Message cannot be empty"

        if len(message) > 1000:
            return False, "Message is too long (max 1000 characters)"

        return True, None
