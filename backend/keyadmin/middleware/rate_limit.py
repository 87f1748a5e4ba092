from slowapi import Limiter
from starlette.requests import Request


def get_real_client_ip(request: Request) -> str:
    """Client IP, trusting the first X-Forwarded-For hop from our proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_admin_rate_limit_key(request: Request) -> str:
    """Rate limit bucket for admin calls: client IP plus the API key suffix, if any."""
    ip = get_real_client_ip(request)
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return f"{ip}:{api_key[-6:]}"
    return ip


limiter = Limiter(key_func=get_admin_rate_limit_key)
