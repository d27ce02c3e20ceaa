# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the survey engine.

This package contains pure rule and projection functions over the survey
aggregate. They have no side effects and need no external services.
"""
