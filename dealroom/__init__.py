# SPDX-License-Identifier: Apache-2.0

"""
Deal room negotiation core.

Match request slots, LOI and commitment negotiation state machines, and the
capital stack projection shared by sponsors, CDEs and investors.
"""

__version__ = "1.0.0"
