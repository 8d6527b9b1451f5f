import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .base_platform import BasePlatform
from services.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)

HELIX_URL = 'https://api.twitch.tv/helix'
TOKEN_URL = 'https://id.twitch.tv/oauth2/token'


class TwitchPlatform(BasePlatform):
    name = "Twitch"

    def __init__(self, credentials: Dict[str, Optional[str]]):
        super().__init__(credentials)
        if not self.client_id or not self.client_secret:
            raise ValueError("Missing TWITCH_CLIENT_ID or TWITCH_CLIENT_SECRET in environment variables!")

        self.access_token = None
        self.token_expires_at = None

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            'Client-ID': self.client_id,
            'Accept': 'application/json'
        }
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'
        return headers

    async def get_access_token(self):
        """Get new access token from Twitch API"""
        params = {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'grant_type': 'client_credentials'
        }
        data = await self._request_json('POST', TOKEN_URL, params=params)
        self.access_token = data['access_token']
        # Refresh a little before Twitch expires it
        expires_in = int(data.get('expires_in', 3600))
        self.token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=max(expires_in - 300, 60))
        logger.info("Successfully refreshed Twitch token")

    async def ensure_valid_token(self):
        """Check and refresh token if needed"""
        if not self.access_token or not self.token_expires_at or datetime.now(timezone.utc) >= self.token_expires_at:
            await self.get_access_token()

    async def _helix(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        await self.ensure_valid_token()
        try:
            return await self._request_json('GET', f'{HELIX_URL}/{path}', params=params, headers=self.headers)
        except UpstreamFailure as e:
            if e.status != 401:
                raise
            # Token revoked early, fetch a new one once
            logger.info("Twitch token rejected, refreshing...")
            await self.get_access_token()
            return await self._request_json('GET', f'{HELIX_URL}/{path}', params=params, headers=self.headers)

    async def get_streamer_details(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get user details (id, login, display_name, profile/offline images)"""
        params = {'id': broadcaster_id} if broadcaster_id else {'login': name.lower()}
        data = await self._helix('users', params)
        users = data.get('data') or []
        return users[0] if users else None

    async def get_stream_details(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the current stream, None when offline"""
        params = {'user_id': broadcaster_id} if broadcaster_id else {'user_login': name.lower()}
        data = await self._helix('streams', params)
        streams = data.get('data') or []
        return streams[0] if streams else None

    async def get_latest_vod(self, name: str, broadcaster_id: str, reference_start: Optional[datetime],
                             platform_session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the archive recorded for the given stream id"""
        if not platform_session_id:
            return None
        data = await self._helix('videos', {'user_id': broadcaster_id, 'type': 'archive', 'period': 'week'})
        for vod in data.get('data') or []:
            if str(vod.get('stream_id')) == str(platform_session_id):
                return vod
        return None

    async def get_streamer(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self.get_streamer_details(name, broadcaster_id)

    async def get_stream(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self.get_stream_details(name, broadcaster_id)
