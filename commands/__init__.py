from dataclasses import dataclass
from typing import Callable, List

from .stream_commands import setup_twitch_command, setup_kick_command
from .multistream_command import setup_multistream_command


@dataclass(frozen=True)
class CommandDescriptor:
    name: str
    description: str
    setup: Callable


# Registration order is the order commands appear in the tree
COMMANDS: List[CommandDescriptor] = [
    CommandDescriptor("twitch", "Manage Twitch stream alerts", setup_twitch_command),
    CommandDescriptor("kick", "Manage Kick stream alerts", setup_kick_command),
    CommandDescriptor("multistream", "Combine a Twitch and a Kick streamer into one alert", setup_multistream_command),
]


class CommandManager:
    def __init__(self, bot, commands: List[CommandDescriptor] = None):
        self.bot = bot
        self.commands = commands if commands is not None else COMMANDS

    @property
    def names(self) -> List[str]:
        return [command.name for command in self.commands]

    def setup(self):
        """Setup all commands"""
        for command in self.commands:
            command.setup(self.bot)
