from functools import wraps

from flask import g, request

from .errors import InvalidToken, MissingToken
from .identity import Identity, IdentityVerifier


def extract_bearer_token(authorization: str) -> str:
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise InvalidToken("Unauthorized access: Invalid token format")
    return parts[1]


def token_required(verifier: IdentityVerifier):
    """Build a route decorator that authenticates the caller with ``verifier``.

    The verified ``Identity`` is bound to ``flask.g.identity`` for the rest of
    the request. Nothing is remembered between requests.
    """

    def decorator(view):
        @wraps(view)
        def decorated(*args, **kwargs):
            authorization = request.headers.get("Authorization")
            if not authorization:
                raise MissingToken()

            token = extract_bearer_token(authorization.strip())
            g.identity = verifier.verify(token)
            return view(*args, **kwargs)

        return decorated

    return decorator


def current_identity() -> Identity:
    return g.identity
