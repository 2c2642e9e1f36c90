"""
Request and response models of the warehouse API, one module per business area.

common holds the shared envelopes (messages, errors, tenant echo).
"""

from .common import MessageResponse  # noqa: F401
