"""
Cross-cutting pieces of the service: settings, errors, logging context,
JWT and password helpers, the role/permission matrix and FastAPI dependencies.
"""
