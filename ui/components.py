import discord
from discord import ui
from typing import Dict, Any, List, Optional


class LinkButton(ui.Button):
    """Link-style button built from a Discord button component payload"""

    def __init__(self, component: Dict[str, Any]):
        emoji = component.get('emoji')
        super().__init__(
            style=discord.ButtonStyle.link,
            label=component.get('label'),
            url=component['url'],
            emoji=discord.PartialEmoji(
                name=emoji['name'],
                id=int(emoji['id']) if emoji.get('id') else None,
                animated=emoji.get('animated', False)
            ) if emoji else None
        )


class LinkButtonView(ui.View):
    """Persistent row(s) of link buttons; link buttons need no callbacks"""

    def __init__(self, rows: List[Dict[str, Any]]):
        super().__init__(timeout=None)
        for row in rows:
            for component in row.get('components', []):
                if component.get('type') == 2 and component.get('url'):
                    self.add_item(LinkButton(component))


def build_view(body: Dict[str, Any]) -> Optional[ui.View]:
    rows = body.get('components') or []
    if not rows:
        return None
    return LinkButtonView(rows)


def to_message_kwargs(body: Dict[str, Any], editing: bool = False) -> Dict[str, Any]:
    """Convert a message body (content/embeds/components JSON) into discord.py send/edit kwargs"""
    kwargs: Dict[str, Any] = {
        'content': body.get('content') or None,
        'embeds': [discord.Embed.from_dict(embed) for embed in body.get('embeds') or []],
    }
    view = build_view(body)
    if view is not None:
        kwargs['view'] = view
    elif editing:
        # Drop buttons left over from the previous render
        kwargs['view'] = None
    return kwargs
