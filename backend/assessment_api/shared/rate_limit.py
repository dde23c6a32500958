from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from assessment_api.config import get_settings


def client_address(request: Request) -> str:
    """Rate-limit key: the address our own proxies saw, else the socket peer.

    Each trusted proxy appends one entry to X-Forwarded-For, so only the
    rightmost ``trusted_proxy_hops`` entries are ours. Anything to their
    left was sent by the client.
    """
    hops = get_settings().trusted_proxy_hops
    if hops > 0:
        forwarded = [hop.strip() for hop in request.headers.get("x-forwarded-for", "").split(",")]
        forwarded = [hop for hop in forwarded if hop]
        if forwarded:
            return forwarded[max(len(forwarded) - hops, 0)]
    return get_remote_address(request)


def assessment_rate_limit() -> str:
    return get_settings().rate_limit


# Rolling window, in-process only
limiter = Limiter(
    key_func=client_address,
    strategy="moving-window",
    storage_uri="memory://",
)
