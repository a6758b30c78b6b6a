"""users.v1 protocol: message classes and the service contract.

`users.proto` is the source of truth; `users_pb2` registers the same file
descriptor with the default pool so the messages are wire-compatible with any
client generated from it.
"""
