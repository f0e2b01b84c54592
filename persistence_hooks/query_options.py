"""
Query option helpers.

Extracts a numeric record id from the raw ``$apply`` / ``$filter`` string of
a request. The match is textual: ``name eq 'id eq 5'`` yields 5, because the
expression grammar is not parsed.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field

# Validation patterns
ID_FILTER_PATTERN = re.compile(r"\bid\s+eq\s+(\d+)", re.IGNORECASE)

# Signed 64-bit range
MAX_ID = 2**63 - 1
MIN_ID = -(2**63)


class QueryOptions(BaseModel):
    """
    Raw query options of a request.

    Attributes:
        filter: Unparsed ``$filter`` expression
        apply: Unparsed ``$apply`` expression
    """

    filter: Optional[str] = Field(None, description="Raw $filter expression")
    apply: Optional[str] = Field(None, description="Raw $apply expression")

    def get_id(self) -> Optional[int]:
        """Extract the ``id eq N`` value, see get_id()."""
        return get_id(self)


def get_id(query_options: Optional[QueryOptions]) -> Optional[int]:
    """
    Extract the id from an ``id eq N`` clause.

    The apply expression takes precedence over the filter expression.

    Args:
        query_options: Query options, may be None

    Returns:
        The first matched id, or None when there is no expression, no match,
        the digits are not ASCII, or they do not fit a signed 64-bit integer
    """
    if query_options is None:
        return None

    value = query_options.apply if query_options.apply is not None else query_options.filter
    if value is None:
        return None

    match = ID_FILTER_PATTERN.search(value)
    if not match:
        return None

    # \d also matches non-ASCII decimal digits, which are not valid ids
    digits = match.group(1)
    if not digits.isascii():
        return None

    record_id = int(digits)
    if not MIN_ID <= record_id <= MAX_ID:
        return None
    return record_id
