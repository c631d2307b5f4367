"""Service wiring and FastAPI dependencies"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from moment_editions.config import Settings
from moment_editions.db import Database
from moment_editions.diagnostics import EditionDiagnostics
from moment_editions.lifecycle import EditionLifecycle
from moment_editions.policy import EditionPolicy
from moment_editions.scoring import RarityScorer
from moment_editions.services.chain import ChainGateway, RelayChainGateway
from moment_editions.services.ledger import EditionLedger
from moment_editions.services.moments import MomentStore
from moment_editions.services.publisher import MetadataPublisher
from moment_editions.services.reconciliation import ReconciliationService
from moment_editions.services.recorder import MintRecorder
from moment_editions.services.simulated_chain import SimulatedChainGateway

logger = logging.getLogger(__name__)

@dataclass
class EditionServices:
    """Everything the routes need, built once per application"""
    settings: Settings
    database: Database
    gateway: ChainGateway
    ledger: EditionLedger
    moments: MomentStore
    recorder: MintRecorder
    reconciler: ReconciliationService
    lifecycle: EditionLifecycle
    diagnostics: EditionDiagnostics

def build_gateway(settings: Settings) -> ChainGateway:
    """Relay gateway when a relay is configured, otherwise the in-process simulation"""
    if settings.CHAIN_RELAY_URL:
        return RelayChainGateway(
            base_url=settings.CHAIN_RELAY_URL,
            contract_address=settings.CONTRACT_ADDRESS,
            api_key=settings.CHAIN_RELAY_API_KEY
        )
    logger.warning("CHAIN_RELAY_URL not set, using the simulated chain gateway")
    return SimulatedChainGateway()

def build_services(settings: Settings, database: Database,
                   gateway: Optional[ChainGateway] = None,
                   publisher: Optional[MetadataPublisher] = None) -> EditionServices:
    gateway = gateway or build_gateway(settings)
    publisher = publisher or MetadataPublisher(settings.s3_settings, settings.METADATA_BASE_URL)
    scorer = RarityScorer(settings.rarity_weights)
    ledger = EditionLedger(database)
    moments = MomentStore(database)
    reconciler = ReconciliationService(gateway, ledger, moments, scorer)
    recorder = MintRecorder(gateway, ledger, reconciler)
    lifecycle = EditionLifecycle(
        gateway=gateway,
        ledger=ledger,
        moments=moments,
        scorer=scorer,
        policy=EditionPolicy.from_settings(settings),
        publisher=publisher,
        recorder=recorder,
        reconciler=reconciler,
        site_url=settings.PUBLIC_SITE_URL,
        confirmation_timeout=settings.CONFIRMATION_TIMEOUT_SECONDS,
        poll_interval=settings.CONFIRMATION_POLL_SECONDS
    )
    return EditionServices(
        settings=settings,
        database=database,
        gateway=gateway,
        ledger=ledger,
        moments=moments,
        recorder=recorder,
        reconciler=reconciler,
        lifecycle=lifecycle,
        diagnostics=EditionDiagnostics(gateway, ledger)
    )

def get_services(request: Request) -> EditionServices:
    services = getattr(request.app.state, 'services', None)
    if services is None:
        raise HTTPException(status_code=500, detail="Edition services not configured")
    return services

def get_caller_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity supplied by the upstream auth layer"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id
