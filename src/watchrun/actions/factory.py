"""Action creation from config."""

from __future__ import annotations

from typing import TextIO

from ..config import (
    ActionConfig,
    CommandActionConfig,
    LogActionConfig,
    WebhookActionConfig,
)
from .base import Action
from .command import CommandAction
from .log import LogAction
from .webhook import WebhookAction


def build_action(
    config: ActionConfig,
    *,
    dry_run: bool = False,
    output: TextIO | None = None,
) -> Action:
    """Create an action instance from its config.

    ``output`` receives command output and log lines; webhooks ignore it.
    """
    if isinstance(config, CommandActionConfig):
        return CommandAction(
            config.command,
            config.dir,
            dry_run=dry_run,
            output=output,
        )
    if isinstance(config, WebhookActionConfig):
        return WebhookAction(
            config.url,
            method=config.method,
            headers=config.headers,
            timeout=config.timeout,
            dry_run=dry_run,
        )
    if isinstance(config, LogActionConfig):
        return LogAction(config.format, dry_run=dry_run, output=output)
    raise ValueError(
        f"Unknown action type: {getattr(config, 'type', config)!r}. "
        "Supported: command, webhook, log"
    )
