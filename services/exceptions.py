from typing import Any, Optional


class StreamAlertError(Exception):
    """Base class for errors raised while resolving, fetching or dispatching alerts"""


class InvalidInput(StreamAlertError):
    """Malformed or missing command arguments"""


class MissingTarget(InvalidInput):
    """Neither a Twitch nor a Kick streamer was given"""

    def __init__(self, message: str = "You must specify a Twitch or Kick streamer"):
        super().__init__(message)


class NotFound(StreamAlertError):
    def __init__(self, platform: str, name: str):
        self.platform = platform
        self.name = name
        super().__init__(f"You are not subscribed to {platform} notifications for this streamer: `{name}`")


class NotLinked(StreamAlertError):
    def __init__(self, platform: str, name: str):
        self.platform = platform
        self.name = name
        super().__init__(f"The {platform} streamer `{name}` is not linked to a multistream")


class LinkMismatch(StreamAlertError):
    """Twitch and Kick subscriptions do not reference each other symmetrically"""

    def __init__(self, twitch_name: str, kick_name: str):
        self.twitch_name = twitch_name
        self.kick_name = kick_name
        super().__init__(
            f"The Twitch streamer `{twitch_name}` and Kick streamer `{kick_name}` are not linked together"
        )


class UpstreamFailure(StreamAlertError):
    """A platform API or Discord transport call failed"""

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None):
        self.status = status
        self.details = details
        super().__init__(message)
