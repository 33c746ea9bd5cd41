"""List bounds shared by the document and audit listings."""
import os

DEFAULT_LIMIT = int(os.getenv('LIST_DEFAULT_LIMIT', '50'))
MAX_LIMIT = int(os.getenv('LIST_MAX_LIMIT', '200'))


def normalize_pagination(limit_raw, offset_raw, default_limit=DEFAULT_LIMIT, max_limit=MAX_LIMIT):
    """Parse query-string limit/offset and clamp them into range.

    Raises ValueError for non-integer input; callers turn that into a 400.
    """
    try:
        limit = int(limit_raw) if limit_raw not in (None, '') else default_limit
        offset = int(offset_raw) if offset_raw not in (None, '') else 0
    except (TypeError, ValueError):
        raise ValueError('limit/offset must be int')
    return max(1, min(limit, max_limit)), max(0, offset)
