"""Rule engine: matches file system events against configured rules."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..config import ActionConfig, RuleConfig, WatchrunConfig
from ..matcher import Matcher
from ..watcher.events import Event

logger = logging.getLogger("watchrun")


@dataclass(frozen=True)
class Match:
    """A rule that matched an event."""

    rule_name: str
    action: ActionConfig
    rule_index: int


class RuleEngine:
    """Evaluates events against rules in declaration order.

    Global ignore patterns are checked first and short-circuit evaluation.
    A rule with an empty event filter accepts every event type. The engine
    holds no mutable state, so one instance can be shared freely.
    """

    def __init__(self, rules: Sequence[RuleConfig], global_ignores: Sequence[str] = ()):
        self._rules = tuple(rules)
        self._ignore = Matcher((), global_ignores)
        self._matchers = tuple(Matcher(rule.watch) for rule in self._rules)

    @classmethod
    def from_config(cls, config: WatchrunConfig) -> RuleEngine:
        return cls(config.rules, config.global_.ignore)

    @property
    def rules(self) -> tuple[RuleConfig, ...]:
        return self._rules

    def is_ignored(self, path: str) -> bool:
        return self._ignore.is_ignored(path)

    def evaluate(self, event: Event) -> list[Match]:
        if self.is_ignored(event.path):
            return []

        matches = []
        for index, (rule, matcher) in enumerate(zip(self._rules, self._matchers)):
            if rule.events and event.type not in rule.events:
                continue
            if matcher.match(event.path):
                matches.append(Match(rule_name=rule.name, action=rule.action, rule_index=index))

        if matches:
            logger.debug(
                f"{event.type} {event.path} matched {', '.join(m.rule_name for m in matches)}"
            )
        return matches
