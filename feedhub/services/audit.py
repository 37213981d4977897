from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from feedhub.core.normalize import client_ip_from_request
from feedhub.core.settings import S
from feedhub.core.time import now_ts

logger = logging.getLogger("feedhub.audit")


def audit_event(event: str, user_sub: Optional[str], request=None, **fields: Any) -> None:
    if not S.audit_log_enabled:
        return
    payload: Dict[str, Any] = {"event": event, "user_sub": user_sub, "ts": now_ts(), **fields}
    if request is not None:
        payload["ip"] = client_ip_from_request(request)
        payload["user_agent"] = request.headers.get("user-agent", "")[:256]
    logger.info(json.dumps(payload, separators=(",", ":"), default=str))
