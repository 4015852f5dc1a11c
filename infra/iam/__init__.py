"""
IAM Module
Node roles with their managed policy attachments, and the cluster service role
"""

from .functions import (
    NODE_POLICY_ARNS,
    create_cluster_role,
    create_node_roles,
    create_role,
    plan_role,
)

__all__ = [
    "NODE_POLICY_ARNS",
    "create_cluster_role",
    "create_node_roles",
    "create_role",
    "plan_role",
]
