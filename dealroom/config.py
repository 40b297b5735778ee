# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Workflow configuration loaded from environment variables.
"""

import os
from dataclasses import dataclass

from .models.enums import TargetType


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() == 'true'


@dataclass
class WorkflowConfig:
    """Limits and windows governing the negotiation workflow."""
    max_cde_requests: int = 3
    max_investor_requests: int = 3
    cooldown_days: int = 7
    request_expiration_days: int = 30
    loi_expiration_days: int = 30
    commitment_expiration_days: int = 30
    require_accepted_match_request: bool = False

    def slot_limit(self, target_type: TargetType) -> int:
        if target_type == TargetType.CDE:
            return self.max_cde_requests
        return self.max_investor_requests

    @classmethod
    def from_env(cls) -> 'WorkflowConfig':
        return cls(
            max_cde_requests=int(os.getenv('MATCH_REQUEST_MAX_CDE', '3')),
            max_investor_requests=int(os.getenv('MATCH_REQUEST_MAX_INVESTOR', '3')),
            cooldown_days=int(os.getenv('MATCH_REQUEST_COOLDOWN_DAYS', '7')),
            request_expiration_days=int(os.getenv('MATCH_REQUEST_EXPIRATION_DAYS', '30')),
            loi_expiration_days=int(os.getenv('LOI_EXPIRATION_DAYS', '30')),
            commitment_expiration_days=int(os.getenv('COMMITMENT_EXPIRATION_DAYS', '30')),
            require_accepted_match_request=_env_flag('REQUIRE_ACCEPTED_MATCH_REQUEST')
        )
