"""
Deterministic development source.

Stands in for a vendor whose API key is not configured, so the service can run
end to end without credentials. The same domain always gets the same score.
"""

ENGINES = 88

HIGH_RISK_KEYWORDS = ("ads", "doubleclick", "adserver", "adnetwork", "click", "tracking", "dangerous", "risky")
MEDIUM_RISK_KEYWORDS = ("example", "test", "medium")


def _domain_hash(domain: str, salt: str = "") -> int:
    return sum(ord(c) for c in domain + salt)


def check(domain: str, timeout: float = 10, *, source: str = "mock") -> dict:
    h = _domain_hash(domain, source)

    if any(k in domain for k in HIGH_RISK_KEYWORDS):
        detected = 30 + h % 40
        tier = "high"
    elif any(k in domain for k in MEDIUM_RISK_KEYWORDS):
        detected = 15 + h % 20
        tier = "medium"
    else:
        detected = h % 11
        tier = "low"

    return {
        "risk_score": detected / ENGINES * 100.0,
        "detected": detected,
        "total": ENGINES,
        "tier": tier,
        "mode": "mock",
    }
