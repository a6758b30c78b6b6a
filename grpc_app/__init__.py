"""gRPC transport layer for the application.

This package hosts:
- The users.v1 contract (`proto/users.proto`) and its Python message classes and stubs.
- Server bootstrap and interceptors.
- Thin service adapters that map gRPC requests to the user repository.
"""
