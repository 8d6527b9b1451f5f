from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, Optional


class IStreamPlatform(ABC):
    """Interface for stream platform clients

    Every method raises UpstreamFailure when the platform call fails.
    """

    @abstractmethod
    async def get_streamer(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get channel/user details, None if the streamer does not exist"""
        pass

    @abstractmethod
    async def get_stream(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the current live stream, None when offline"""
        pass

    @abstractmethod
    async def get_latest_vod(self, name: str, broadcaster_id: str, reference_start: Optional[datetime],
                             platform_session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the VOD recorded for a session, None if there is no match"""
        pass

    async def initialize(self) -> None:
        """Open network resources"""

    async def cleanup(self) -> None:
        """Release network resources"""
