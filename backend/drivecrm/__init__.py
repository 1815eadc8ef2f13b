"""
DriveCRM - Multi-tenant lead management core
============================================

Admins own a tenant, create agents, import leads and hand them out.

CORE RULES:
- Every lead, agent, status, reminder, comment and activity carries the
  tenant id (stored as ``adminId``) and is only ever read through a tenant filter
- Every mutation on a lead appends an immutable activity record
- ``leadId`` is a short numeric identifier unique across all tenants
- Lead emails are unique within a tenant
"""

__version__ = "1.0.0"
__product__ = "DriveCRM"
