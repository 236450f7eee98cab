"""
Command Bus
===========
Dispatches commands to exactly one registered handler per command kind.

The bus is policy-agnostic: callers (or handlers) consult the PolicyService
before dispatch, which keeps the bus usable for internal system commands.
"""

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, Dict, Generic, List, Optional, Type, TypeVar

import structlog

from ..errors import NoHandlerRegisteredError
from ..logging import log_audit
from ..metrics import record_command
from ..policy.service import derive_resource_action

logger = structlog.get_logger(__name__)

C = TypeVar("C", bound="Command")
R = TypeVar("R")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(kw_only=True)
class Command:
    """
    Base class for commands.

    Subclasses are dataclasses carrying their payload. Each subclass is
    tagged with a command_kind (its class name unless set explicitly) that
    keys the handler registry.
    """
    command_kind: ClassVar[str] = "Command"

    actor_id: Optional[str] = None
    command_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    executed_at: Optional[datetime] = None

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if "command_kind" not in cls.__dict__:
            cls.command_kind = cls.__name__


class CommandHandler(ABC, Generic[C, R]):
    """Executes one kind of command."""

    @abstractmethod
    async def execute(self, command: C) -> R:
        ...


class CommandBus:
    """
    Registry of command handlers keyed by command kind.

    Example:
        bus = CommandBus()
        bus.register(CreateClientCommand, CreateClientHandler(repo, users, policies))
        result = await bus.execute(CreateClientCommand(name="Acme", ..., actor_id=user.id))
    """

    def __init__(self):
        self._handlers: Dict[str, CommandHandler] = {}

    def register(self, command_type: Type[Command], handler: CommandHandler) -> None:
        """Associate a command kind with its handler; the last registration wins."""
        kind = command_type.command_kind
        if kind in self._handlers:
            logger.info("command_handler_replaced", command=kind)
        self._handlers[kind] = handler
        logger.debug("command_handler_registered", command=kind, handler=type(handler).__name__)

    def get_handler(self, kind: str) -> Optional[CommandHandler]:
        return self._handlers.get(kind)

    def get_registered_commands(self) -> List[str]:
        return list(self._handlers)

    def clear_handlers(self) -> None:
        self._handlers.clear()

    async def execute(self, command: Command):
        """
        Execute a command through its registered handler.

        Sets command.executed_at only when the handler succeeds.

        Raises:
            NoHandlerRegisteredError: No handler for the command's kind
            Exception: Whatever the handler raised, unchanged
        """
        kind = command.command_kind
        handler = self._handlers.get(kind)
        if handler is None:
            logger.warning("command_unhandled", command=kind, command_id=command.command_id)
            raise NoHandlerRegisteredError(kind)

        pair = derive_resource_action(kind)
        resource_type = pair[0] if pair else None
        started = time.perf_counter()

        try:
            result = await handler.execute(command)
        except Exception as e:
            record_command(kind, "error", time.perf_counter() - started)
            log_audit(
                kind,
                actor_id=command.actor_id,
                resource_type=resource_type,
                outcome="failure",
                metadata={"command_id": command.command_id, "error_type": type(e).__name__},
            )
            raise

        command.executed_at = _utcnow()
        duration = time.perf_counter() - started
        record_command(kind, "success", duration)
        log_audit(
            kind,
            actor_id=command.actor_id,
            resource_type=resource_type,
            metadata={"command_id": command.command_id, "duration_ms": round(duration * 1000, 3)},
        )
        return result
