import json


def sse_event(event_type: str, data) -> str:
    """Format a Server-Sent Event string."""
    payload = {"type": event_type, "data": data}
    return f"data: {json.dumps(payload)}\n\n"
