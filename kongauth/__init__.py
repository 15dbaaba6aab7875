"""Authentication helpers for services behind the Kong API gateway.

``kongauth.auth`` resolves a Kong consumer's secret from Redis or SQL and hands
it to an application authenticator; ``kongauth.status`` holds the status codes
and errors it raises.
"""

__version__ = "1.0.0"

__all__ = ["auth", "status"]