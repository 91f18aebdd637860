"""Tagged handler outcomes.

Every handler returns exactly one of ``Ok``, ``NotFound`` or
``UpstreamError``. The HTTP layer turns ``to_payload()`` into the response
body and ``status`` into the response status code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Ok:
    # Either a JSON-serialisable object or pre-serialised JSON text.
    value: Any
    max_age: int | None = None
    status: int = 200

    def to_payload(self) -> Any:
        return self.value


@dataclass(frozen=True)
class NotFound:
    message: str
    status: int = 404

    def to_payload(self) -> dict:
        return {"status": self.status, "message": self.message}


@dataclass(frozen=True)
class UpstreamError:
    status: int
    message: str

    def to_payload(self) -> dict:
        return {"status": self.status, "message": self.message}


Result = Ok | NotFound | UpstreamError
