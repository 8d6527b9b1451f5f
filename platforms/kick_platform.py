import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from .base_platform import BasePlatform
from models.stream import parse_timestamp
from services.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)

PUBLIC_API_URL = 'https://api.kick.com/public/v1'
SITE_API_URL = 'https://kick.com/api/v2'
TOKEN_URL = 'https://id.kick.com/oauth/token'

BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36',
    'Accept': 'application/json',
    'Accept-Language': 'en-US,en;q=0.5',
    'Connection': 'keep-alive',
    'Referer': 'https://kick.com/'
}


class KickPlatform(BasePlatform):
    """Kick client: official API for live state, site API for channels and VODs"""

    name = "Kick"

    def __init__(self, credentials: Dict[str, Optional[str]]):
        super().__init__(credentials)
        self.access_token = None
        self.token_expires_at = None
        self.site_session = requests.Session()
        self.site_session.headers.update(BROWSER_HEADERS)

    async def get_access_token(self):
        """Get an app access token from Kick's OAuth server"""
        if not self.client_id or not self.client_secret:
            raise UpstreamFailure("Missing KICK_CLIENT_ID or KICK_CLIENT_SECRET")
        data = await self._request_json('POST', TOKEN_URL, data={
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'grant_type': 'client_credentials'
        })
        self.access_token = data['access_token']
        expires_in = int(data.get('expires_in', 3600))
        self.token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=max(expires_in - 300, 60))
        logger.info("Successfully refreshed Kick token")

    async def ensure_valid_token(self):
        if not self.access_token or not self.token_expires_at or datetime.now(timezone.utc) >= self.token_expires_at:
            await self.get_access_token()

    def _site_get(self, path: str) -> Any:
        """Blocking GET against kick.com; run through asyncio.to_thread"""
        url = f'{SITE_API_URL}/{path}'
        try:
            response = self.site_session.get(
                url,
                headers={'X-XSRF-TOKEN': str(random.randint(10000000, 99999999))},
                timeout=15
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"[Kick] Request error for {url}: {e}")
            raise UpstreamFailure(f"Kick request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code == 403:
            logger.warning("[Kick] Access forbidden - possible Cloudflare block")
        if not response.ok:
            raise UpstreamFailure(
                f"Kick request failed with status {response.status_code}",
                status=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFailure("Kick returned an invalid response") from e

    async def get_channel(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get channel details (slug, user_id, user.username, user.profile_pic, offline banner)"""
        return await asyncio.to_thread(self._site_get, f'channels/{name.lower()}')

    async def get_live_stream(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the current livestream from the official API, None when offline"""
        if not broadcaster_id:
            channel = await self.get_channel(name)
            if not channel:
                return None
            broadcaster_id = channel.get('user_id')

        await self.ensure_valid_token()
        data = await self._request_json(
            'GET', f'{PUBLIC_API_URL}/livestreams',
            params={'broadcaster_user_id': str(broadcaster_id), 'limit': '1'},
            headers={'Authorization': f'Bearer {self.access_token}'}
        )
        for stream in data.get('data') or []:
            if str(stream.get('broadcaster_user_id')) == str(broadcaster_id):
                return stream
        return None

    async def get_latest_vod(self, name: str, broadcaster_id: str, reference_start: Optional[datetime],
                             platform_session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Nearest VOD that started at or after the session start"""
        if reference_start is None:
            return None
        videos: Optional[List[Dict[str, Any]]] = await asyncio.to_thread(
            self._site_get, f'channels/{name.lower()}/videos')
        return select_vod(videos or [], reference_start)

    async def get_streamer(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self.get_channel(name, broadcaster_id)

    async def get_stream(self, name: str, broadcaster_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self.get_live_stream(name, broadcaster_id)

    async def cleanup(self):
        await super().cleanup()
        self.site_session.close()


def select_vod(videos: List[Dict[str, Any]], reference_start: datetime) -> Optional[Dict[str, Any]]:
    """Pick the VOD whose start is closest to, and not before, the reference start"""
    best = None
    best_delta = None
    for video in videos:
        started = parse_timestamp(video.get('start_time') or video.get('created_at'))
        if started is None or started < reference_start:
            continue
        delta = started - reference_start
        if best_delta is None or delta < best_delta:
            best, best_delta = video, delta
    return best
