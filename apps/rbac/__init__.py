"""
RBAC (Role-Based Access Control) application.

Provides:
- User identity with a ranked role (CLIENT_USER < CLIENT_ADMIN < ANALYST)
- Object-level authorization for incidents and comments
- Server-side sessions with sliding expiration
- Append-only audit logging
"""
