"""
Deal Room Negotiation API - Flask Application Entry Point

Builds the workflow services for the configured storage backend and exposes
them through an OpenAPI 3.0 Flask application.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag

from .config import WorkflowConfig
from .middleware.error_handler import register_error_handlers
from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .services.capital_stack import CapitalStackService
from .services.commitments import CommitmentService
from .services.loi import LOIService
from .services.match_requests import MatchRequestService
from .services.notifications import NotificationEmitter
from .services.side_effects import SideEffects

logger = logging.getLogger(__name__)

info = Info(
    title="Deal Room Negotiation API",
    version="1.0.0",
    description="Match requests, letters of intent, commitments and capital stacks across sponsors, CDEs and investors"
)

tags = [
    Tag(name="Match Requests", description="Sponsor requests to CDEs and investors"),
    Tag(name="Letters of Intent", description="CDE allocation offers to sponsors"),
    Tag(name="Commitments", description="Investor commitments and acceptances"),
    Tag(name="Deals", description="Deal funding views"),
    Tag(name="Health", description="System health and status")
]


@dataclass
class Services:
    """Workflow services plus the adapters they were built on."""
    match_requests: MatchRequestService
    loi: LOIService
    commitments: CommitmentService
    capital_stack: CapitalStackService
    parties: Any
    deals: Any
    audit: Any
    publisher: Any
    health_checks: Dict[str, Callable[[], bool]] = field(default_factory=dict)


def _wire(config: WorkflowConfig, clock: Callable[[], datetime], match_repo, loi_repo, commitment_repo,
          ownership, parties, deals, audit, publisher, notification_executor=None) -> Services:
    side_effects = SideEffects(audit, NotificationEmitter(publisher), notification_executor)
    return Services(
        match_requests=MatchRequestService(match_repo, ownership, deals, side_effects, config, clock),
        loi=LOIService(loi_repo, ownership, deals, side_effects, config, clock, match_requests=match_repo),
        commitments=CommitmentService(
            commitment_repo, ownership, deals, side_effects, config, clock,
            match_requests=match_repo, lois=loi_repo
        ),
        capital_stack=CapitalStackService(deals, loi_repo, commitment_repo, parties, clock, ownership=ownership),
        parties=parties,
        deals=deals,
        audit=audit,
        publisher=publisher
    )


def build_memory_services(config: Optional[WorkflowConfig] = None,
                          clock: Callable[[], datetime] = datetime.utcnow) -> Services:
    """In-process backend for local development and tests."""
    from .services.memory import (
        InMemoryAuditSink, InMemoryCommitmentRepository, InMemoryDealRegistry, InMemoryLOIRepository,
        InMemoryMatchRequestRepository, InMemoryPartyDirectory, InMemoryPublisher
    )

    directory = InMemoryPartyDirectory()
    return _wire(
        config or WorkflowConfig(),
        clock,
        InMemoryMatchRequestRepository(),
        InMemoryLOIRepository(),
        InMemoryCommitmentRepository(),
        directory,
        directory,
        InMemoryDealRegistry(),
        InMemoryAuditSink(),
        InMemoryPublisher()
    )


def build_mongodb_services(config: Optional[WorkflowConfig] = None) -> Services:
    """MongoDB storage with Redis-cached ownership lookups and AMQP notifications."""
    from .services.amqp import create_amqp_service
    from .services.audit import AuditService
    from .services.deals import DealRegistry
    from .services.mongodb import get_mongodb_service
    from .services.parties import CachedOrgOwnership, PartyDirectory
    from .services.redis import create_redis_service
    from .services.repositories import CommitmentRepository, LOIRepository, MatchRequestRepository

    mongodb_service = get_mongodb_service()
    mongodb_service.ensure_indexes()
    redis_service = create_redis_service()
    amqp_service = create_amqp_service()

    directory = PartyDirectory(mongodb_service)
    ownership = CachedOrgOwnership(
        directory, redis_service, int(os.getenv('OWNERSHIP_CACHE_TTL', '300'))
    )
    services = _wire(
        config or WorkflowConfig.from_env(),
        datetime.utcnow,
        MatchRequestRepository(mongodb_service),
        LOIRepository(mongodb_service),
        CommitmentRepository(mongodb_service),
        ownership,
        directory,
        DealRegistry(mongodb_service),
        AuditService(mongodb_service),
        amqp_service,
        ThreadPoolExecutor(
            max_workers=int(os.getenv('NOTIFICATION_WORKERS', '4')), thread_name_prefix='notify'
        )
    )
    services.health_checks = {
        "mongodb": lambda: mongodb_service.health_check()["status"] == "healthy",
        "redis": redis_service.is_available,
        "amqp": amqp_service.health_check
    }
    return services


def build_services() -> Services:
    backend = os.getenv('STORAGE_BACKEND', 'mongodb').lower()
    logger.info(f"Building workflow services with {backend} storage")
    if backend == 'memory':
        return build_memory_services(WorkflowConfig.from_env())
    if backend == 'mongodb':
        return build_mongodb_services()
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")


def create_app(services: Optional[Services] = None) -> OpenAPI:
    """
    Create the Flask application.

    Args:
        services: Prebuilt services; built from the environment when omitted
    """
    if services is None:
        setup_observability()
        services = build_services()

    app = OpenAPI(__name__, info=info)

    add_observability_middleware(app)

    app.config['ENVIRONMENT'] = os.getenv('ENVIRONMENT', 'development')
    app.config['ENV'] = app.config['ENVIRONMENT']
    app.config['DEBUG'] = app.config['ENVIRONMENT'] == 'development'

    register_error_handlers(app)

    # Make services available to routes
    app.services = services
    app.match_request_service = services.match_requests
    app.loi_service = services.loi
    app.commitment_service = services.commitments
    app.capital_stack_service = services.capital_stack

    from .routes.match_requests import match_requests_bp
    from .routes.loi import loi_bp
    from .routes.commitments import commitments_bp
    from .routes.deals import deals_bp

    app.register_api(match_requests_bp)
    app.register_api(loi_bp)
    app.register_api(commitments_bp)
    app.register_api(deals_bp)

    @app.get('/api/healthz', tags=[tags[-1]])
    def health_check():
        """Dependency health of the configured backend."""
        checks = {}
        for name, check in services.health_checks.items():
            try:
                checks[name] = "healthy" if check() else "unhealthy"
            except Exception as e:
                logger.error(f"Health check {name} failed: {e}")
                checks[name] = "unhealthy"

        healthy = all(status == "healthy" for status in checks.values())
        return jsonify({
            "status": "healthy" if healthy else "unhealthy",
            "service": "dealroom-negotiation-api",
            "version": "1.0.0",
            "environment": app.config['ENVIRONMENT'],
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "dependencies": checks
        }), 200 if healthy else 503

    return app


if __name__ == '__main__':
    # Development server
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )
