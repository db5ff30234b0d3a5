"""Factory helpers for constructing the client and orchestrator from settings."""
from __future__ import annotations

from .client import VerificationClient
from .config import VerifierSettings
from .orchestrator import BatchOrchestrator


def build_client(settings: VerifierSettings) -> VerificationClient:
    """Create a service client, failing early when no API key is configured."""

    return VerificationClient(
        settings.require_api_key(),
        base_url=settings.base_url,
        request_timeout=settings.request_timeout,
    )


def build_orchestrator(settings: VerifierSettings, client) -> BatchOrchestrator:
    return BatchOrchestrator.from_settings(client, settings)
