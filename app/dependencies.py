from fastapi import Request


def get_client_ip(request: Request) -> str | None:
    """Caller address for action logs; the app sits behind the mobile gateway proxy."""
    forwarded_for = request.headers.get('x-forwarded-for', '')
    first_hop = forwarded_for.split(',')[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get('x-real-ip', '').strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else None
