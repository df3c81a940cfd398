"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from reward_gate.db.session import get_db
from reward_gate.services.minting import MintClient, get_mint_client
from reward_gate.services.orchestrator import MatchSubmissionPipeline
from reward_gate.services.store import SecurityStore

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_store(db: SessionDep) -> SecurityStore:
    """Bind a store to the request-scoped session."""
    return SecurityStore(db)


def get_mint_client_dep() -> MintClient:
    return get_mint_client()


StoreDep = Annotated[SecurityStore, Depends(get_store)]
MintClientDep = Annotated[MintClient, Depends(get_mint_client_dep)]


def get_pipeline(store: StoreDep, mint_client: MintClientDep) -> MatchSubmissionPipeline:
    """Build a pipeline for one request; no state is shared across requests."""
    return MatchSubmissionPipeline(store, mint_client=mint_client)


PipelineDep = Annotated[MatchSubmissionPipeline, Depends(get_pipeline)]
