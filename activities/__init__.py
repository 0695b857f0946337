"""Activity definitions module."""

from activities.resolve import (
    resolve_counterparty,
    provision_counterparty,
    learn_counterparty_alias,
    ResolveCounterpartyInput,
    ResolveCounterpartyOutput,
    LearnAliasInput,
    LearnAliasOutput,
    TASK_QUEUE,
)

__all__ = [
    # Resolution activities
    "resolve_counterparty",
    "provision_counterparty",
    "learn_counterparty_alias",
    "ResolveCounterpartyInput",
    "ResolveCounterpartyOutput",
    "LearnAliasInput",
    "LearnAliasOutput",
    "TASK_QUEUE",
]
