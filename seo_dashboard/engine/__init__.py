from .engine import AuditEngine

__all__ = ["AuditEngine"]
