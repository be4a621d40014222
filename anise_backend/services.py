"""
Process-wide service wiring.

Every client is constructed once here and handed to the components that need
it; nothing in the package keeps module-level client singletons.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests
from web3 import Web3

from .chain.receipts import ReceiptFetcher
from .chain.verifier import TransactionVerifier
from .config import Settings
from .exceptions import ConfigurationError
from .dao import DaoService
from .identity.resolver import IdentityResolver
from .identity.wallet import WalletLinker
from .members import MembershipService
from .payments.client import GoCardlessClient
from .payments.flow import PaymentFlowOrchestrator
from .payments.webhooks import WebhookProcessor
from .queries import ReadModel
from .reconcile.entities import build_pipelines
from .reconcile.pipeline import VerifyAndReconcile
from .reconcile.reconciler import DocumentReconciler
from .store.base import DocumentStore
from .store.firestore import FirestoreDocumentStore
from .store.memory import MemoryDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: DocumentStore
    verifier: TransactionVerifier
    reconciler: DocumentReconciler
    pipelines: Dict[str, VerifyAndReconcile]
    daos: DaoService
    members: MembershipService
    reads: ReadModel
    identity: IdentityResolver
    wallets: WalletLinker
    gocardless: GoCardlessClient
    payments: PaymentFlowOrchestrator
    webhooks: WebhookProcessor


def build_store(settings: Settings) -> DocumentStore:
    """
    Create the document store named by settings.store_backend.

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    if settings.store_backend == "firestore":
        logger.info(f"Using Firestore document store (project {settings.firestore_project or 'default'})")
        return FirestoreDocumentStore(project=settings.firestore_project)
    if settings.store_backend == "memory":
        logger.warning("Using the in-memory document store; data is lost on restart")
        return MemoryDocumentStore()
    raise ConfigurationError(f"Unknown store backend '{settings.store_backend}'. Use 'memory' or 'firestore'")


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    w3: Optional[Web3] = None,
    http_session: Optional[requests.Session] = None,
) -> ServiceContainer:
    """
    Build every service from settings.

    Args:
        settings: Runtime settings (read from the environment when omitted)
        store: Document store; built from settings.store_backend when omitted
        w3: Web3 client (HTTPProvider on the resolved RPC URL when omitted)
        http_session: requests session for the payment provider

    Returns:
        The wired ServiceContainer
    """
    settings = settings or Settings.from_env()
    if store is None:
        store = build_store(settings)

    fetcher = ReceiptFetcher(w3) if w3 is not None else ReceiptFetcher.from_rpc_url(
        settings.resolved_rpc_url(), timeout=settings.http_timeout,
    )
    verifier = TransactionVerifier(fetcher)
    reconciler = DocumentReconciler(store)
    gocardless = GoCardlessClient(
        settings.gocardless_access_token,
        environment=settings.gocardless_environment,
        timeout=settings.http_timeout,
        session=http_session,
    )

    logger.info(f"Services built for network {settings.network}")
    return ServiceContainer(
        settings=settings,
        store=store,
        verifier=verifier,
        reconciler=reconciler,
        pipelines=build_pipelines(verifier, reconciler),
        daos=DaoService(verifier, store, factory_address=settings.resolved_dao_factory()),
        members=MembershipService(verifier, store),
        reads=ReadModel(store),
        identity=IdentityResolver(store, env_tier=settings.env_tier, jwt_secret=settings.jwt_secret),
        wallets=WalletLinker(store),
        gocardless=gocardless,
        payments=PaymentFlowOrchestrator(gocardless, store, settings.gocardless_success_url),
        webhooks=WebhookProcessor(gocardless, store),
    )
