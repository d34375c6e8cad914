"""Actions performed when a rule matches.

- "command": run a shell command, killing the previous run first
- "webhook": send the event as JSON over HTTP
- "log": write a formatted line
"""

from .base import Action, write_to_sink
from .command import CommandAction
from .factory import build_action
from .log import LogAction
from .webhook import WebhookAction

__all__ = [
    "Action",
    "CommandAction",
    "LogAction",
    "WebhookAction",
    "build_action",
    "write_to_sink",
]
