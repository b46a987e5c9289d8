import math
from pydantic import BaseModel

class Pagination(BaseModel):
    current: int
    total: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total_items: int) -> "Pagination":
        skip = (page - 1) * limit
        return cls(
            current=page,
            total=math.ceil(total_items / limit),
            has_next=skip + limit < total_items,
            has_prev=page > 1,
        )
