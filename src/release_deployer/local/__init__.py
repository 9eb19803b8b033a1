"""Local execution on the machine driving the deployment."""

from .session import LocalSession

__all__ = ["LocalSession"]
