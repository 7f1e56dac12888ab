from decimal import Decimal
from typing import Optional


def money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else f"{value:.2f}"


def paginate(qs, page: Optional[int], page_size: Optional[int]):
    """Slice a queryset the way every list endpoint does; returns ``(items, pagination)``."""
    total = qs.count()
    page = page or 1
    page_size = page_size or 20
    start = (page - 1) * page_size
    items = list(qs[start:start + page_size])
    return items, {'total': total, 'page': page, 'pageSize': page_size}
