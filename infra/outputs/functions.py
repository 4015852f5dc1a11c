"""
Outputs Module Functions
Builds the kubeconfig for the cluster and exports the stack outputs
"""

import json
import pulumi
from typing import Any, Dict


def render_kubeconfig(cluster_name: str, endpoint: str, ca_data: str, region: str) -> Dict[str, Any]:
    """
    Build a kubeconfig document that authenticates with `aws eks get-token`

    Args:
        cluster_name: EKS cluster name
        endpoint: API server endpoint
        ca_data: Base64 cluster certificate authority
        region: AWS region the cluster lives in

    Returns:
        Kubeconfig as a dict
    """
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {
                "server": endpoint,
                "certificate-authority-data": ca_data,
            },
        }],
        "contexts": [{
            "name": "aws",
            "context": {
                "cluster": cluster_name,
                "user": "aws",
            },
        }],
        "current-context": "aws",
        "preferences": {},
        "users": [{
            "name": "aws",
            "user": {
                "exec": {
                    "apiVersion": "client.authentication.k8s.io/v1beta1",
                    "command": "aws",
                    "args": ["eks", "get-token", "--cluster-name", cluster_name, "--region", region],
                },
            },
        }],
    }


def create_kubeconfig(cluster_result: Dict[str, Any], region: str) -> pulumi.Output[str]:
    """Kubeconfig JSON resolved from the cluster's outputs"""
    return pulumi.Output.all(
        cluster_result["cluster_name"],
        cluster_result["cluster_endpoint"],
        cluster_result["cluster_certificate_authority_data"],
    ).apply(lambda args: json.dumps(render_kubeconfig(args[0], args[1], args[2], region)))


def export_outputs(cluster_result: Dict[str, Any], network: Dict[str, Any],
                   database: Dict[str, Any], region: str) -> Dict[str, Any]:
    """
    Export the kubeconfig and the handful of identifiers operators need

    Returns:
        Dict of exported names to values
    """
    outputs = {
        "kubeconfig": create_kubeconfig(cluster_result, region),
        "cluster_name": cluster_result["cluster_name"],
        "vpc_id": network["vpc_id"],
        "database_endpoint": database["endpoint"],
        "kubeconfig_command": pulumi.Output.concat(
            "aws eks update-kubeconfig --region ", region,
            " --name ", cluster_result["cluster_name"]),
    }
    for name, value in outputs.items():
        pulumi.export(name, value)
    return outputs
