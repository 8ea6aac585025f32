"""Authentication and authorization.

Learn: one authentication path, email/password → JWT access/refresh
pair, with every issued token also stored in session_tokens so it can be
revoked before it expires.

- password.py: bcrypt hashing
- jwt.py: signing and verification (no I/O)
- tokens.py: issuing, resolving, refreshing and revoking against the store
- dependencies.py: bearer header → Identity
- guards.py: role policy, path id shape, organization scoping
"""
