import hmac


def check_api_key(supplied: str | None, expected: str) -> bool:
    """Constant-time comparison of the caller's key against the configured one."""
    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode(), expected.encode())
