"""Human-readable order numbers: PREFIX-YYYYMMDD-NNNN.

Pure functions; uniqueness is enforced by the orders.order_number constraint
and the composer retries with a fresh suffix on collision.
"""
import random
import re
from datetime import date

_DEV_PREFIX = "DEV"
_DEFAULT_PREFIX = "ORD"
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def domain_prefix(hostname: str) -> str:
    """First three letters of the site domain, upper-cased.

    'www.puritya.com' -> 'PUR'; localhost and '*-preview*' hosts -> 'DEV'.
    """
    host = hostname.strip().lower()
    if host.startswith("www."):
        host = host[4:]
    label = host.split(".")[0]
    if not label or label == "localhost" or "-preview" in label:
        return _DEV_PREFIX
    return _NON_ALNUM.sub("", label)[:3].upper() or _DEV_PREFIX


def resolve_prefix(use_domain_prefix: bool, custom_prefix: str, hostname: str) -> str:
    if use_domain_prefix:
        return domain_prefix(hostname)
    return (custom_prefix or _DEFAULT_PREFIX).upper()


def generate_order_number(
    prefix: str, on: date, rng: random.Random | None = None
) -> str:
    suffix = (rng or random).randint(1000, 9999)
    return f"{prefix.upper()}-{on:%Y%m%d}-{suffix}"
