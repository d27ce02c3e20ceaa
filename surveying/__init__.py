# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Survey engine - survey aggregate with repeatable-question navigation.
"""

__version__ = "1.0.0"
