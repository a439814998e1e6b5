# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting and processing request data.
"""

from flask import request
from typing import Dict, Any, List, Tuple
import logging

logger = logging.getLogger(__name__)


class RequestParser:
    """Utility for parsing and extracting request data."""

    @staticmethod
    def get_pagination_params(
        default_page: int = 1,
        default_page_size: int = 20,
        max_page_size: int = 100
    ) -> Dict[str, int]:
        """
        Extract pagination parameters from request.

        Args:
            default_page: Default page number
            default_page_size: Default page size
            max_page_size: Maximum allowed page size

        Returns:
            Dictionary with page and page_size
        """
        try:
            page = int(request.args.get('page', default_page))
            page = max(1, page)
        except (ValueError, TypeError):
            page = default_page

        try:
            page_size = int(request.args.get('page_size', default_page_size))
            page_size = max(1, min(page_size, max_page_size))
        except (ValueError, TypeError):
            page_size = default_page_size

        return {
            'page': page,
            'page_size': page_size
        }


def paginate(items: List[Any], page: int, page_size: int) -> Tuple[List[Any], int]:
    """
    Slice an in-memory result set.

    Returns:
        Tuple of (items on the page, total item count)
    """
    total = len(items)
    start = (page - 1) * page_size
    return items[start:start + page_size], total
