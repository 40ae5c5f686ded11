"""
HTTP layer: routes, request/response models, dependency providers and
error handlers.
"""
