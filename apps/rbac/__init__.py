"""
RBAC (Role-Based Access Control) application.

Provides multi-tenant access control with:
- Tenant-scoped users with a break-glass administrator flag
- A permission catalog of tenant-owned and global rows
- Per-tenant roles, grants and bulk grants
- Per-user overrides that beat role grants
- Comprehensive audit logging
"""
