# SPDX-License-Identifier: Apache-2.0

"""
HTTP routes exposing the negotiation workflow.
"""
