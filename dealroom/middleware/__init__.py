# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

Actor context extraction from gateway headers and error-to-response mapping.
"""
