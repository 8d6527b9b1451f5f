from typing import Any, Dict, List, Optional, Tuple

SUBSCRIPTION_COLUMNS = '''
    s.id, s.platform, s.guild_id, s.broadcaster_id, s.name, s.channel_id,
    s.role_id, s.live_message, s.offline_message,
    m.id AS link_id,
    m.twitch_subscription_id AS link_twitch_id,
    m.kick_subscription_id AS link_kick_id,
    m.priority AS link_priority,
    m.late_merge AS link_late_merge
'''

SUBSCRIPTION_JOIN = '''
    FROM subscriptions s
    LEFT JOIN multi_streams m ON
        (s.platform = 'twitch' AND m.twitch_subscription_id = s.id) OR
        (s.platform = 'kick' AND m.kick_subscription_id = s.id)
'''

SESSION_FIELDS = (
    'discord_channel_id', 'discord_message_id',
    'twitch_subscription_id', 'kick_subscription_id',
    'twitch_online', 'kick_online',
    'twitch_started_at', 'twitch_ended_at', 'kick_started_at', 'kick_ended_at',
    'twitch_stream_id',
    'twitch_streamer_data', 'twitch_stream_data', 'twitch_vod',
    'kick_streamer_data', 'kick_stream_data', 'kick_vod',
    'created_at', 'ended_at', 'archived_at',
)

EDITABLE_SUBSCRIPTION_FIELDS = ('channel_id', 'role_id', 'live_message', 'offline_message')


def escape_like(value: str) -> str:
    """Escape LIKE wildcards; Twitch names routinely contain underscores"""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class QueryBuilder:
    """SQL query builder utility"""

    @staticmethod
    def find_subscriptions_by_name(platform: str, guild_id: int, name_pattern: str) -> Tuple[str, tuple]:
        """Case-insensitive partial name match within one guild"""
        query = f'''
            SELECT {SUBSCRIPTION_COLUMNS}
            {SUBSCRIPTION_JOIN}
            WHERE s.platform = ? AND s.guild_id = ? AND s.name LIKE ? ESCAPE '\\'
            ORDER BY lower(s.name)
        '''
        params = (platform, guild_id, f"%{escape_like(name_pattern)}%")
        return query, params

    @staticmethod
    def get_subscription(platform: str, subscription_id: int) -> Tuple[str, tuple]:
        query = f'''
            SELECT {SUBSCRIPTION_COLUMNS}
            {SUBSCRIPTION_JOIN}
            WHERE s.platform = ? AND s.id = ?
        '''
        return query, (platform, subscription_id)

    @staticmethod
    def list_subscriptions(platform: Optional[str] = None, guild_id: Optional[int] = None,
                           broadcaster_id: Optional[str] = None) -> Tuple[str, tuple]:
        """Filter subscriptions by any combination of platform, guild and broadcaster"""
        conditions: List[str] = []
        params: List[Any] = []
        if platform is not None:
            conditions.append('s.platform = ?')
            params.append(platform)
        if guild_id is not None:
            conditions.append('s.guild_id = ?')
            params.append(guild_id)
        if broadcaster_id is not None:
            conditions.append('s.broadcaster_id = ?')
            params.append(broadcaster_id)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''
        query = f'''
            SELECT {SUBSCRIPTION_COLUMNS}
            {SUBSCRIPTION_JOIN}
            {where}
            ORDER BY lower(s.name)
        '''
        return query, tuple(params)

    @staticmethod
    def insert_subscription(values: Dict[str, Any]) -> Tuple[str, tuple]:
        query = '''
            INSERT INTO subscriptions (
                platform, guild_id, broadcaster_id, name, channel_id,
                role_id, live_message, offline_message
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        '''
        params = (
            values['platform'], values['guild_id'], values['broadcaster_id'],
            values['name'], values['channel_id'], values.get('role_id'),
            values.get('live_message'), values.get('offline_message'),
        )
        return query, params

    @staticmethod
    def update_subscription(subscription_id: int, values: Dict[str, Any]) -> Tuple[str, tuple]:
        """Update the editable columns present in `values`"""
        fields = [field for field in EDITABLE_SUBSCRIPTION_FIELDS if field in values]
        if not fields:
            raise ValueError("No subscription fields to update")
        assignments = ', '.join(f'{field} = ?' for field in fields)
        query = f'UPDATE subscriptions SET {assignments} WHERE id = ?'
        return query, tuple(values[field] for field in fields) + (subscription_id,)

    @staticmethod
    def insert_session(values: Dict[str, Any]) -> Tuple[str, tuple]:
        columns = ', '.join(SESSION_FIELDS)
        placeholders = ', '.join('?' for _ in SESSION_FIELDS)
        query = f'INSERT INTO stream_messages ({columns}) VALUES ({placeholders})'
        return query, tuple(values.get(field) for field in SESSION_FIELDS)

    @staticmethod
    def update_session(session_id: int, values: Dict[str, Any]) -> Tuple[str, tuple]:
        """Update every column except the message id, which only the claim queries touch"""
        fields = [field for field in SESSION_FIELDS if field != 'discord_message_id']
        assignments = ', '.join(f'{field} = ?' for field in fields)
        query = f'UPDATE stream_messages SET {assignments} WHERE id = ?'
        params = tuple(values.get(field) for field in fields) + (session_id,)
        return query, params

    @staticmethod
    def find_open_session(platform: str, subscription_id: int) -> Tuple[str, tuple]:
        query, params = QueryBuilder.list_open_sessions(platform, subscription_id)
        return f'{query} LIMIT 1', params

    @staticmethod
    def list_open_sessions(platform: str, subscription_id: int) -> Tuple[str, tuple]:
        """Unarchived sessions in which the subscription's platform is online, newest first"""
        if platform not in ('twitch', 'kick'):
            raise ValueError(f"Unsupported platform: {platform}")
        query = f'''
            SELECT * FROM stream_messages
            WHERE {platform}_subscription_id = ? AND {platform}_online = 1
                AND archived_at IS NULL
            ORDER BY id DESC
        '''
        return query, (subscription_id,)
