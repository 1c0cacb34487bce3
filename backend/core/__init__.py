"""
core - domain-independent framework layer

- security: permission keys, scope hierarchy, aggregation, conditions, caching

The app layer (models, services, routers) builds on these abstractions and
registers its permission provider with core.security.permission_provider_registry.
"""
