from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class RequestContext:
    trace_id: str
    span_id: str
    request_id: str

    @classmethod
    def new(cls, trace_id: str | None = None) -> RequestContext:
        """Start a context, inheriting an inbound trace id when one is given."""

        return cls(
            trace_id=trace_id or str(uuid.uuid4()),
            span_id=str(uuid.uuid4()),
            request_id=str(uuid.uuid4()),
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
