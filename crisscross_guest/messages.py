"""Response envelopes for the push transport.

Replies never carry their own header unless the caller merges one in.
"""

import json
from typing import Any, Dict, Optional


def make_envelope(err: Optional[str], message: Optional[Dict[str, Any]] = None) -> str:
    """Serialise a ``{success: 0|1, ...}`` envelope to a JSON string."""
    if err:
        return json.dumps({"success": 0, "message": err})
    return json.dumps({"success": 1, **(message or {})})


def make_request(message_type: str, payload: Optional[Dict[str, Any]] = None) -> str:
    """Serialise an outbound tagged request such as ``{"type": "listservers"}``."""
    return json.dumps({**(payload or {}), "type": message_type})
