"""Authentication, roles and the access policy.

Note: routers are not exported here to avoid circular imports.
"""
