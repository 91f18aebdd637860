from __future__ import annotations

from pydantic import BaseModel


class NegativeCacheEntry(BaseModel):
    """Cached failure outcome, stored under the same key as the success value.

    A cache read that parses into this shape is a cached error, anything
    else is a serialised domain object.
    """

    status: int
    message: str
