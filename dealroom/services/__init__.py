# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - workflow orchestration, storage adapters and side effects.
"""

from .mongodb import MongoDBService, get_mongodb_service, close_mongodb_connection
from .amqp import AMQPService, AMQPConfig, PublishResult, create_amqp_service
from .match_requests import MatchRequestService
from .loi import LOIService
from .commitments import CommitmentService
from .capital_stack import CapitalStackService
from .side_effects import SideEffects

__all__ = [
    "MongoDBService",
    "get_mongodb_service",
    "close_mongodb_connection",
    "AMQPService",
    "AMQPConfig",
    "PublishResult",
    "create_amqp_service",
    "MatchRequestService",
    "LOIService",
    "CommitmentService",
    "CapitalStackService",
    "SideEffects"
]
