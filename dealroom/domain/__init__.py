# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the negotiation workflow.

Pure state machine and projection functions with no I/O; services load and
persist records around them.
"""
