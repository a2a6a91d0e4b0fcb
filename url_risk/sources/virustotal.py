"""
VirusTotal - Multi-engine domain reputation
Requires API key (free tier: 4 requests/minute, 500/day)
https://developers.virustotal.com/reference/domain-info
"""

import os
import urllib.parse
import urllib.request
from typing import Optional

from ..errors import FatalSourceError, SourceAuthError
from .http_meta import request_json

NAME = "virustotal"
API_URL = "https://www.virustotal.com/api/v3/domains/{domain}"


def detection_score(detected: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return detected / total * 100.0


def check(domain: str, timeout: float = 10, *, api_key: Optional[str] = None) -> dict:
    """
    Look up a domain report.

    Returns:
        dict with 'risk_score', 'detected', 'total', per-category counts, etc.
    """
    api_key = api_key or os.getenv("VIRUSTOTAL_API_KEY")
    if not api_key:
        raise SourceAuthError("VIRUSTOTAL_API_KEY not set", source=NAME)

    req = urllib.request.Request(API_URL.format(domain=urllib.parse.quote(domain, safe="")))
    req.add_header("x-apikey", api_key)

    result = request_json(req, source=NAME, timeout=timeout, not_found_ok=True)
    if result is None:
        # Not in the VirusTotal database yet, so nothing has flagged it.
        return {"risk_score": 0.0, "detected": 0, "total": 0, "known": False}

    if "error" in result:
        err = result.get("error") or {}
        raise FatalSourceError(f"{NAME}: {err.get('message') or err}", source=NAME)

    attributes = (result.get("data") or {}).get("attributes") or {}
    stats = attributes.get("last_analysis_stats") or {}

    malicious = int(stats.get("malicious", 0) or 0)
    suspicious = int(stats.get("suspicious", 0) or 0)
    harmless = int(stats.get("harmless", 0) or 0)
    undetected = int(stats.get("undetected", 0) or 0)

    detected = malicious + suspicious
    total = detected + harmless + undetected

    return {
        "risk_score": detection_score(detected, total),
        "detected": detected,
        "total": total,
        "malicious": malicious,
        "suspicious": suspicious,
        "harmless": harmless,
        "undetected": undetected,
        "scan_date": attributes.get("last_analysis_date"),
        "reputation": attributes.get("reputation", 0),
        "categories": attributes.get("categories", {}),
        "known": True,
    }
