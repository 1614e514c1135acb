"""Explicitly constructed service graph shared by routes and workers."""
import random
from dataclasses import dataclass
from typing import Optional
from shared.clock import Clock, now_ms
from shared.config import config
from shared.counters import CounterStore, InMemoryCounterStore, RedisCounterStore
from shared.policy import PolicyHolder, SecurityPolicy
from api.services.auth import AuthService
from api.services.classification import ClassificationEngine, FeatureScorer
from api.services.document_store import DocumentStore, InMemoryDocumentStore, PostgresDocumentStore
from api.services.extraction import TextExtractor
from api.services.login_guard import LoginGuard
from api.services.pipeline import IntakePipeline
from api.services.rate_limiter import RateLimiter
from api.services.search import SearchEngine
from api.services.security import SecurityValidator
from api.services.storage import StorageService
from api.services.translation import TranslationClient
from api.services.violations import ViolationRecorder
import logging

logger = logging.getLogger(__name__)


@dataclass
class VaultServices:
    """Every service one app instance (or one test) uses."""
    policy: PolicyHolder
    recorder: ViolationRecorder
    validator: SecurityValidator
    rate_limiter: RateLimiter
    login_guard: LoginGuard
    extractor: TextExtractor
    classifier: ClassificationEngine
    document_store: DocumentStore
    search_engine: SearchEngine
    pipeline: IntakePipeline
    translator: TranslationClient
    auth: AuthService
    blob_store: object


def build_services(
    counter_store: Optional[CounterStore] = None,
    document_store: Optional[DocumentStore] = None,
    blob_store=None,
    auth: Optional[AuthService] = None,
    extractor: Optional[TextExtractor] = None,
    translator: Optional[TranslationClient] = None,
    policy: Optional[SecurityPolicy] = None,
    clock: Clock = now_ms,
    rng: Optional[random.Random] = None
) -> VaultServices:
    """Wire the service graph; omitted collaborators come from configuration.

    Args:
        counter_store: Rate limit / login counter backend
        document_store: Relational document store
        blob_store: Object storage for uploaded bytes
        auth: Owner authentication service
        extractor: Text extractor
        translator: Translation client
        policy: Initial security policy
        clock: Epoch-millisecond time source for the policy layer
        rng: Random source for the feature scorer

    Returns:
        VaultServices
    """
    if counter_store is None:
        if config.COUNTER_BACKEND == "memory":
            counter_store = InMemoryCounterStore()
        else:
            counter_store = RedisCounterStore()
    if document_store is None:
        document_store = PostgresDocumentStore()
    if blob_store is None:
        blob_store = StorageService()

    holder = PolicyHolder(policy)
    recorder = ViolationRecorder(clock=clock)
    extractor = extractor or TextExtractor()
    classifier = ClassificationEngine(feature_scorer=FeatureScorer(rng=rng))
    search_engine = SearchEngine(document_store, counters=counter_store)
    validator = SecurityValidator(holder, recorder)

    logger.info(f"Built services with {type(counter_store).__name__} and {type(document_store).__name__}")
    return VaultServices(
        policy=holder,
        recorder=recorder,
        validator=validator,
        rate_limiter=RateLimiter(counter_store, holder, recorder, clock=clock),
        login_guard=LoginGuard(counter_store, holder, recorder, clock=clock),
        extractor=extractor,
        classifier=classifier,
        document_store=document_store,
        search_engine=search_engine,
        pipeline=IntakePipeline(validator, extractor, classifier, document_store, blob_store, search_engine),
        translator=translator or TranslationClient(),
        auth=auth or AuthService(),
        blob_store=blob_store,
    )


def build_in_memory_services(blob_store, auth=None, **kwargs) -> VaultServices:
    """Single-process wiring with in-memory counters and documents."""
    return build_services(
        counter_store=InMemoryCounterStore(),
        document_store=InMemoryDocumentStore(),
        blob_store=blob_store,
        auth=auth,
        **kwargs
    )
