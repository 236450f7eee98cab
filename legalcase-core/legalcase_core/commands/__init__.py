"""
Command Bus
===========
Command/handler dispatch plus the client lifecycle commands.
"""

from .bus import Command, CommandBus, CommandHandler
from .client import (
    AssignClientToLawyerCommand,
    AssignClientToLawyerHandler,
    ClientRepository,
    CreateClientCommand,
    CreateClientHandler,
    DeleteClientCommand,
    DeleteClientHandler,
    UpdateClientCommand,
    UpdateClientHandler,
    UserDirectory,
    register_client_handlers,
)

__all__ = [
    # Bus
    "Command",
    "CommandBus",
    "CommandHandler",
    # Client commands
    "AssignClientToLawyerCommand",
    "AssignClientToLawyerHandler",
    "ClientRepository",
    "CreateClientCommand",
    "CreateClientHandler",
    "DeleteClientCommand",
    "DeleteClientHandler",
    "UpdateClientCommand",
    "UpdateClientHandler",
    "UserDirectory",
    "register_client_handlers",
]
