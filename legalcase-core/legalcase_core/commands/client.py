"""
Client Commands
===============
Commands and handlers for the client lifecycle of a legal practice.

Each handler loads the acting user, asks the PolicyService for a decision
and only then touches the repository.

Usage:
    from legalcase_core.commands import CommandBus, register_client_handlers

    bus = CommandBus()
    register_client_handlers(bus, repository, users, policies)
    result = await bus.execute(
        CreateClientCommand(name="Acme GmbH", email="legal@acme.de",
                            client_type="corporate", actor_id=user_id)
    )
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

import structlog

from ..errors import NotFoundError, ValidationError
from ..policy import Actor, PolicyService
from .bus import Command, CommandBus, CommandHandler

logger = structlog.get_logger(__name__)


class UserDirectory(Protocol):
    """Looks up active users as policy actors."""

    async def get_actor(self, user_id: str) -> Optional[Actor]:
        ...


class ClientRepository(Protocol):
    """Persistence for client records."""

    async def get_by_id(self, client_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def create(self, fields: Mapping[str, Any]) -> str:
        ...

    async def update(self, client_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def soft_delete(self, client_id: str) -> None:
        ...


@dataclass
class CreateClientCommand(Command):
    name: str
    email: str
    client_type: str
    phone: Optional[str] = None
    address: Optional[str] = None
    industry: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class UpdateClientCommand(Command):
    client_id: str
    updates: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeleteClientCommand(Command):
    client_id: str


@dataclass
class AssignClientToLawyerCommand(Command):
    client_id: str
    lawyer_id: str


class _ClientCommandHandler:
    def __init__(
        self,
        repository: ClientRepository,
        users: UserDirectory,
        policies: PolicyService,
    ):
        self.repository = repository
        self.users = users
        self.policies = policies

    async def _load_actor(self, user_id: Optional[str]) -> Actor:
        actor = await self.users.get_actor(user_id) if user_id else None
        if actor is None:
            raise NotFoundError("User not found or inactive", details={"user_id": user_id})
        return actor

    async def _load_client(self, client_id: str) -> Dict[str, Any]:
        client = await self.repository.get_by_id(client_id)
        if client is None:
            raise NotFoundError("Client not found", details={"client_id": client_id})
        return client

    @staticmethod
    def _client_context(client_id: str, client: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "clientId": client_id,
            "assignedLawyerId": client.get("assigned_lawyer_id"),
        }


class CreateClientHandler(_ClientCommandHandler, CommandHandler[CreateClientCommand, Dict[str, str]]):
    async def execute(self, command: CreateClientCommand) -> Dict[str, str]:
        actor = await self._load_actor(command.actor_id)
        await self.policies.authorize(actor, command.command_kind)

        client_id = await self.repository.create({
            "name": command.name,
            "email": command.email,
            "client_type": command.client_type,
            "phone": command.phone,
            "address": command.address,
            "industry": command.industry,
            "notes": command.notes,
            "assigned_lawyer_id": actor.id,
            "is_active": True,
        })

        logger.info("client_created", client_id=client_id, actor_id=actor.id)
        return {"client_id": client_id}


class UpdateClientHandler(_ClientCommandHandler, CommandHandler[UpdateClientCommand, Dict[str, str]]):
    async def execute(self, command: UpdateClientCommand) -> Dict[str, str]:
        if not command.updates:
            raise ValidationError("No updates provided", details={"client_id": command.client_id})

        actor = await self._load_actor(command.actor_id)
        client = await self._load_client(command.client_id)
        await self.policies.authorize(
            actor,
            command.command_kind,
            self._client_context(command.client_id, client),
        )

        await self.repository.update(command.client_id, command.updates)
        logger.info(
            "client_updated",
            client_id=command.client_id,
            actor_id=actor.id,
            fields=sorted(command.updates),
        )
        return {"client_id": command.client_id}


class DeleteClientHandler(_ClientCommandHandler, CommandHandler[DeleteClientCommand, Dict[str, bool]]):
    async def execute(self, command: DeleteClientCommand) -> Dict[str, bool]:
        actor = await self._load_actor(command.actor_id)
        client = await self._load_client(command.client_id)
        await self.policies.authorize(
            actor,
            command.command_kind,
            self._client_context(command.client_id, client),
        )

        await self.repository.soft_delete(command.client_id)
        logger.info("client_deleted", client_id=command.client_id, actor_id=actor.id)
        return {"success": True}


class AssignClientToLawyerHandler(
    _ClientCommandHandler,
    CommandHandler[AssignClientToLawyerCommand, Dict[str, str]],
):
    async def execute(self, command: AssignClientToLawyerCommand) -> Dict[str, str]:
        actor = await self._load_actor(command.actor_id)
        client = await self._load_client(command.client_id)
        await self.policies.authorize(
            actor,
            command.command_kind,
            self._client_context(command.client_id, client),
        )

        lawyer = await self.users.get_actor(command.lawyer_id)
        if lawyer is None:
            raise NotFoundError("Lawyer not found or inactive", details={"lawyer_id": command.lawyer_id})

        await self.repository.update(command.client_id, {"assigned_lawyer_id": lawyer.id})
        logger.info(
            "client_assigned",
            client_id=command.client_id,
            lawyer_id=lawyer.id,
            previous_lawyer_id=client.get("assigned_lawyer_id"),
            actor_id=actor.id,
        )
        return {"client_id": command.client_id, "lawyer_id": lawyer.id}


def register_client_handlers(
    bus: CommandBus,
    repository: ClientRepository,
    users: UserDirectory,
    policies: PolicyService,
) -> None:
    """Register every client command handler on the bus."""
    bus.register(CreateClientCommand, CreateClientHandler(repository, users, policies))
    bus.register(UpdateClientCommand, UpdateClientHandler(repository, users, policies))
    bus.register(DeleteClientCommand, DeleteClientHandler(repository, users, policies))
    bus.register(
        AssignClientToLawyerCommand,
        AssignClientToLawyerHandler(repository, users, policies),
    )
