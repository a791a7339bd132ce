"""Wire a production session: logging, SQLite-backed store, OpenAI generator."""

from __future__ import annotations

from typing import Optional

import structlog

from clinassist.actions import ClinicalCollaborators
from clinassist.config import AssistantSettings, get_settings
from clinassist.db import create_engine_from_settings
from clinassist.gateway import GenerateFn, ModelGateway
from clinassist.model_client import OpenAIGenerator
from clinassist.observability import configure_logging
from clinassist.operator_memory import OperatorMemory
from clinassist.session import AssistantSession, OperatorIdentity, RosterProvider
from clinassist.storage import KeyValueStore, SQLAlchemyKeyValueStore


logger = structlog.get_logger(__name__)


def create_store(settings: Optional[AssistantSettings] = None) -> SQLAlchemyKeyValueStore:
    settings = settings or get_settings()
    return SQLAlchemyKeyValueStore(create_engine_from_settings(settings))


def create_session(
    operator: OperatorIdentity,
    roster_provider: RosterProvider,
    collaborators: ClinicalCollaborators,
    *,
    settings: Optional[AssistantSettings] = None,
    store: Optional[KeyValueStore] = None,
    generate: Optional[GenerateFn] = None,
    log_level: Optional[str] = None,
) -> AssistantSession:
    """Build an unopened :class:`AssistantSession`; call ``await session.open()`` next."""

    configure_logging(log_level)
    settings = settings or get_settings()
    store = store if store is not None else create_store(settings)
    generate = generate or OpenAIGenerator(settings=settings)
    gateway = ModelGateway(generate, store=store, settings=settings)
    memory = OperatorMemory(store)
    logger.info(
        "assistant_session_created",
        operator_id=operator.id,
        model=gateway.model_name,
        offline=settings.offline_model,
    )
    return AssistantSession(
        operator,
        roster_provider=roster_provider,
        collaborators=collaborators,
        gateway=gateway,
        memory=memory,
        settings=settings,
    )


__all__ = ["create_session", "create_store"]
