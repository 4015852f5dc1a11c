"""
IAM Module Functions
Creates the node roles trusted by the cluster and the cluster service role
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, List, Sequence

from infra.specs import PolicyAttachmentSpec, RoleSpec, check_unique


NODE_POLICY_ARNS = (
    "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy",
    "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy",
    "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly",
)

CLUSTER_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy"


def plan_role(name: str, policy_arns: Sequence[str] = NODE_POLICY_ARNS) -> RoleSpec:
    """
    Describe a node role and one attachment per policy

    Attachment names are "{name}-policy-{index}", so two roles attaching the
    same policy never collide.

    Args:
        name: Role name, unique within the stack
        policy_arns: Managed policies to attach, in order

    Returns:
        RoleSpec with its attachments
    """
    attachments = tuple(
        PolicyAttachmentSpec(role_name=name, policy_arn=arn, name=f"{name}-policy-{index}")
        for index, arn in enumerate(policy_arns)
    )
    return RoleSpec(name=name, attachments=attachments)


def create_role(name: str, policy_arns: Sequence[str] = NODE_POLICY_ARNS,
                tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create IAM role for EKS worker nodes

    Args:
        name: Role name
        policy_arns: Managed policies to attach
        tags: Additional tags

    Returns:
        Dict with role resource, attachments and outputs
    """
    tags = tags or {}
    spec = plan_role(name, policy_arns)
    spec.validate()

    role = aws.iam.Role(
        spec.name,
        assume_role_policy=spec.assume_role_policy(),
        tags={
            **tags,
            "Name": spec.name,
            "Module": "iam"
        }
    )

    policy_attachments = []
    for attachment in spec.attachments:
        policy_attachments.append(aws.iam.RolePolicyAttachment(
            attachment.name,
            policy_arn=attachment.policy_arn,
            role=role.name
        ))

    return {
        "spec": spec,
        "role": role,
        "policy_attachments": policy_attachments,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_node_roles(names: List[str], policy_arns: Sequence[str] = NODE_POLICY_ARNS,
                      tags: Dict[str, str] = None) -> Dict[str, Dict[str, any]]:
    """
    Create one node role per name

    Args:
        names: Role names; duplicates are rejected before anything is declared
        policy_arns: Managed policies attached to every role
        tags: Additional tags

    Returns:
        Dict mapping role name to the create_role result
    """
    check_unique(list(names), "role name")

    roles = {}
    for name in names:
        roles[name] = create_role(name, policy_arns, tags)
    pulumi.log.info(f"Declared node roles: {', '.join(names)}")
    return roles


def create_cluster_role(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create IAM role for the EKS control plane

    Args:
        name: Cluster name
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-cluster-role",
        assume_role_policy=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Action": "sts:AssumeRole",
                "Effect": "Allow",
                "Principal": {"Service": "eks.amazonaws.com"}
            }]
        }),
        tags={
            **tags,
            "Name": f"{name}-cluster-role",
            "Module": "iam"
        }
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-cluster-policy",
        policy_arn=CLUSTER_POLICY_ARN,
        role=role.name
    )

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "role_arn": role.arn,
        "role_name": role.name
    }
