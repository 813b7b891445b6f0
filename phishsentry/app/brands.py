"""
brands.py

Brand impersonation / typosquatting check against a curated table.

Public function:
    detect_brand_impersonation(hostname: str) -> AnalysisSignal
"""

from .models import AnalysisSignal

WEIGHT_BRAND_MENTION = 20
WEIGHT_TYPOSQUAT = 25

# Declared order matters: the first brand mentioned wins the mention rule.
BRAND_VARIANTS = (
    ('paypal', ('paypa1', 'paypai', 'paypal-secure', 'paypal.com-', 'paypal-account')),
    ('microsoft', ('micr0soft', 'rnicrosoft', 'microsoft-secure', 'microsoft365', 'ms-verify')),
    ('apple', ('appie', 'apple-id', 'icloud-verify', 'apple.com-')),
    ('amazon', ('arnazon', 'amazon-account', 'amazon-prime', 'amazon.com-')),
    ('google', ('g00gle', 'google-verify', 'gmail-secure', 'accounts-google')),
    ('facebook', ('faceb00k', 'facebook-security', 'fb-login')),
    ('instagram', ('1nstagram', 'insta-verify')),
    ('netflix', ('netfl1x', 'netflix-account', 'netflix-billing')),
    ('bank', ('secure-bank', 'banking-online', 'account-verify')),
)


def _is_official(host: str, brand: str) -> bool:
    # only subdomains count; the bare apex still earns the mention score
    return host.endswith(f".{brand}.com")


def detect_brand_impersonation(hostname: str) -> AnalysisSignal:
    """
    Two independent rules:

    * mention: the first brand (table order) whose name occurs in the hostname
      on a non-official domain adds 20; later brands are not considered.
    * typosquat: every brand whose variant list matches adds 25 once, at the
      first matching variant.
    """
    host = (hostname or '').lower()
    score = 0
    indicators = []

    for brand, _variants in BRAND_VARIANTS:
        if brand in host and not _is_official(host, brand):
            score += WEIGHT_BRAND_MENTION
            indicators.append(f'Contains brand name "{brand}" but not official domain')
            break

    for brand, variants in BRAND_VARIANTS:
        for variant in variants:
            if variant in host:
                score += WEIGHT_TYPOSQUAT
                indicators.append(f'Potential typosquatting of "{brand}" ({variant})')
                break

    return AnalysisSignal(score, indicators)


class BrandImpersonationDetector:
    async def analyze(self, hostname: str) -> AnalysisSignal:
        return detect_brand_impersonation(hostname)
