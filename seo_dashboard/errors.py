"""Exceptions raised by the dashboard services and mapped to HTTP errors by the API."""


class DashboardError(Exception):
    """Base class for service errors."""


class NotFoundError(DashboardError):
    pass


class ValidationError(DashboardError):
    pass


class LimitExceededError(DashboardError):
    """A plan or service tier limit would be exceeded."""


class BudgetExceededError(DashboardError):
    """The agency has spent its API budget for the current billing window."""
