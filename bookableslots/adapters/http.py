"""
Request headers and error decoding shared by the scheduling API adapters.
"""

from typing import Dict, Optional, Tuple

import pendulum
import requests
from pendulum import DateTime


def upstream_headers(api_key: str, site_id: str, access_token: Optional[str] = None) -> Dict[str, str]:
    """Build the headers every scheduling API request carries."""
    headers = {
        "Api-Key": api_key,
        "SiteId": site_id,
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def error_details(response: requests.Response) -> Tuple[Optional[str], str]:
    """
    Decode an error response into (code, message).

    Error format:
    {
        "Error": {
            "Message": "Invalid API key.",
            "Code": "DeniedAccess"
        }
    }
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("Error")
        if isinstance(error, dict):
            code = error.get("Code")
            message = error.get("Message") or response.reason or ""
            return (str(code) if code is not None else None), str(message)

    text = (response.text or "")[:500]
    return None, text or (response.reason or f"HTTP {response.status_code}")


def format_upstream_datetime(value: DateTime) -> str:
    """ISO 8601 in UTC with the Z designator, as the scheduling API expects."""
    return pendulum.instance(value).in_timezone("UTC").format("YYYY-MM-DDTHH:mm:ss") + "Z"
