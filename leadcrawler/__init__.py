"""
Lead Crawler Package
Collects business contact leads through rotating relays with browser sessions.

CLI Usage:
    python -m leadcrawler <url> [<url> ...] [options]

    Options:
        --input           File with one seed URL per line
        --target          Leads to collect
        --require         Required field (email, phone, website, messaging, handle, registry_id)
        --mode            default | directory | social | registry
        --no-relay        Connect directly
        --no-investigate  Skip deep contact investigation
        --max-depth       Investigation depth (default: 5)
        --results-dir     Output directory for JSON / CSV
"""

from .errors import (
    AuthRequiredError,
    AuthTimeout,
    ConnectivityError,
    ErrorKind,
    ExtractionError,
    JobCancelled,
    JobLimitReached,
    LeadCrawlerError,
    NavigationError,
    OperationTimeout,
    PoolExhausted,
    classify_error,
)
from .events import CallbackObserver, EventBus, LoggingObserver, Observer, RecordingObserver
from .investigator import CrawlInvestigator
from .link_policy import LinkPolicy
from .manager import JobManager
from .models import (
    InvestigationResult,
    JobConfig,
    JobOutcome,
    JobProgress,
    JobState,
    RelayCandidate,
    TraversalContext,
    WorkUnit,
)
from .orchestrator import JobOrchestrator
from .providers import RelayProvider, default_providers
from .rate_control import RateController
from .relay_pool import RelayPool
from .run_config import LeadRunConfig
from .session import PageSession, PlaywrightSessionFactory
from .storage import JsonCsvResultStore, ResultStore
from .utils import URLNormalizer

__all__ = [
    # Errors
    'AuthRequiredError',
    'AuthTimeout',
    'ConnectivityError',
    'ErrorKind',
    'ExtractionError',
    'JobCancelled',
    'JobLimitReached',
    'LeadCrawlerError',
    'NavigationError',
    'OperationTimeout',
    'PoolExhausted',
    'classify_error',
    # Events
    'CallbackObserver',
    'EventBus',
    'LoggingObserver',
    'Observer',
    'RecordingObserver',
    # Engine
    'CrawlInvestigator',
    'JobManager',
    'JobOrchestrator',
    'LinkPolicy',
    'RateController',
    'RelayPool',
    'RelayProvider',
    'default_providers',
    'LeadRunConfig',
    'PageSession',
    'PlaywrightSessionFactory',
    'JsonCsvResultStore',
    'ResultStore',
    'URLNormalizer',
    # Model
    'InvestigationResult',
    'JobConfig',
    'JobOutcome',
    'JobProgress',
    'JobState',
    'RelayCandidate',
    'TraversalContext',
    'WorkUnit',
]

__version__ = '1.0.0'
