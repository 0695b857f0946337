"""Core module - cross-cutting services for contact resolution.

Holds the observability stack (correlated logging, resolution metrics)
shared by the resolver, the Temporal activities and the API.

Resolution logic belongs in /contact_resolver/.
"""

__version__ = "1.0.0"
