# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains middleware components for session authentication,
operator permissions, request validation, rate limiting and error handling
in the beneficiary portal API.
"""
