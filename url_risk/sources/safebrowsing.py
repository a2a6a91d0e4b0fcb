"""
Google Safe Browsing - Phishing/malware lookup
Requires API key (free tier: 10,000 requests/day)
https://developers.google.com/safe-browsing/v4/lookup-api
"""

import json
import os
import urllib.request
from typing import Optional

from ..errors import SourceAuthError
from .http_meta import request_json

NAME = "safebrowsing"
API_URL = "https://safebrowsing.googleapis.com/v4/threatMatches:find?key={key}"

THREAT_TYPES = [
    "MALWARE",
    "SOCIAL_ENGINEERING",
    "UNWANTED_SOFTWARE",
    "POTENTIALLY_HARMFUL_APPLICATION",
]


def build_request_body(domain: str) -> dict:
    return {
        "client": {"clientId": "url-risk", "clientVersion": "1.0.0"},
        "threatInfo": {
            "threatTypes": THREAT_TYPES,
            "platformTypes": ["ANY_PLATFORM"],
            "threatEntryTypes": ["URL"],
            "threatEntries": [{"url": f"http://{domain}/"}, {"url": f"https://{domain}/"}],
        },
    }


def check(domain: str, timeout: float = 10, *, api_key: Optional[str] = None) -> dict:
    """
    Look up a domain in Safe Browsing.

    Returns:
        dict with 'risk_score' (100 on any match, else 0) and 'threats'.
    """
    api_key = api_key or os.getenv("GOOGLE_SAFEBROWSING_API_KEY")
    if not api_key:
        raise SourceAuthError("GOOGLE_SAFEBROWSING_API_KEY not set", source=NAME)

    data = json.dumps(build_request_body(domain)).encode("utf-8")
    req = urllib.request.Request(API_URL.format(key=api_key), data=data, method="POST")
    req.add_header("Content-Type", "application/json")

    result = request_json(req, source=NAME, timeout=timeout) or {}
    matches = result.get("matches") or []
    threats = sorted({m.get("threatType") for m in matches if m.get("threatType")})

    return {
        "risk_score": 100.0 if matches else 0.0,
        "is_safe": not matches,
        "threats": threats,
        "platforms": sorted({m.get("platformType") for m in matches if m.get("platformType")}),
    }
