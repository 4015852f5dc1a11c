"""
Database Module Functions
PostgreSQL instance in the private subnets, reachable only on 5432
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Optional

from infra.specs import AccessRuleSpec, DatabaseSpec


def create_db_security_group(spec: AccessRuleSpec, vpc_id: pulumi.Output[str],
                             source_security_group_id: Optional[pulumi.Output[str]] = None,
                             tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create security group for the database

    Args:
        spec: Access rule description
        vpc_id: VPC ID
        source_security_group_id: When set, ingress is limited to this group
            instead of the rule CIDR blocks
        tags: Additional tags

    Returns:
        Dict with security group resource and outputs
    """
    tags = tags or {}
    spec.validate()

    ingress = []
    for rule in spec.ingress:
        if source_security_group_id is not None:
            source = {"security_groups": [source_security_group_id]}
        else:
            source = {"cidr_blocks": list(rule.cidr_blocks)}
        ingress.append(aws.ec2.SecurityGroupIngressArgs(
            description=rule.description,
            protocol=rule.protocol,
            from_port=rule.port,
            to_port=rule.port,
            **source
        ))

    egress = [
        aws.ec2.SecurityGroupEgressArgs(
            protocol=rule.protocol,
            from_port=rule.from_port,
            to_port=rule.to_port,
            cidr_blocks=list(rule.cidr_blocks),
        )
        for rule in spec.egress
    ]

    if source_security_group_id is None:
        pulumi.log.warn(
            f"{spec.name}: database ingress open to "
            f"{', '.join(b for r in spec.ingress for b in r.cidr_blocks)}, not just cluster nodes")
    if not egress:
        pulumi.log.info(f"{spec.name}: no egress rules declared, outbound traffic is blocked")

    security_group = aws.ec2.SecurityGroup(
        spec.name,
        description=spec.description,
        vpc_id=vpc_id,
        ingress=ingress,
        egress=egress,
        tags={
            **tags,
            "Name": spec.name,
            "Module": "database"
        }
    )

    return {
        "security_group": security_group,
        "security_group_id": security_group.id
    }


def create_db_subnet_group(name: str, subnet_ids: List[pulumi.Output[str]],
                           tags: Dict[str, str] = None) -> Dict[str, any]:
    """Create RDS subnet group over the private subnets"""
    tags = tags or {}

    subnet_group = aws.rds.SubnetGroup(
        name,
        name=name,
        subnet_ids=subnet_ids,
        tags={
            **tags,
            "Name": name,
            "Module": "database"
        }
    )

    return {
        "subnet_group": subnet_group,
        "subnet_group_name": subnet_group.name
    }


def create_db_instance(spec: DatabaseSpec, password: pulumi.Input[str],
                       subnet_group_name: pulumi.Output[str],
                       security_group_ids: List[pulumi.Output[str]],
                       tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the RDS instance

    Args:
        spec: Database description
        password: Master password, normally a secret from stack config
        subnet_group_name: RDS subnet group name
        security_group_ids: Security groups guarding the instance
        tags: Additional tags

    Returns:
        Dict with instance resource and outputs
    """
    tags = tags or {}
    spec.validate()

    instance = aws.rds.Instance(
        spec.name,
        allocated_storage=spec.allocated_storage,
        db_name=spec.db_name,
        engine=spec.engine,
        engine_version=spec.engine_version,
        instance_class=spec.instance_class,
        parameter_group_name=spec.parameter_group_name,
        username=spec.username,
        password=password,
        db_subnet_group_name=subnet_group_name,
        publicly_accessible=spec.publicly_accessible,
        vpc_security_group_ids=security_group_ids,
        skip_final_snapshot=spec.skip_final_snapshot,
        multi_az=spec.multi_az,
        deletion_protection=spec.deletion_protection,  # Set to true for production
        tags={
            **tags,
            "Name": spec.name,
            "Module": "database"
        }
    )

    pulumi.log.info(
        f"Database {spec.name}: {spec.engine} {spec.engine_version} on {spec.instance_class}, "
        f"{spec.allocated_storage} GiB, multi_az={spec.multi_az}")

    return {
        "instance": instance,
        "endpoint": instance.endpoint,
        "address": instance.address,
        "database_name": instance.db_name
    }


def create_database(access_rule: AccessRuleSpec, spec: DatabaseSpec,
                    vpc_id: pulumi.Output[str], subnet_ids: List[pulumi.Output[str]],
                    password: pulumi.Input[str],
                    source_security_group_id: Optional[pulumi.Output[str]] = None,
                    tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the complete data tier

    Args:
        access_rule: Security group description
        spec: Database description
        vpc_id: VPC ID
        subnet_ids: Private subnet IDs for the subnet group
        password: Master password
        source_security_group_id: Optional group to narrow ingress to
        tags: Additional tags

    Returns:
        Dict with all database resources and outputs
    """
    sg_result = create_db_security_group(access_rule, vpc_id, source_security_group_id, tags)
    subnet_group_result = create_db_subnet_group(spec.subnet_group_name, subnet_ids, tags)
    instance_result = create_db_instance(
        spec,
        password=password,
        subnet_group_name=subnet_group_result["subnet_group_name"],
        security_group_ids=[sg_result["security_group_id"]],
        tags=tags
    )

    return {
        "endpoint": instance_result["endpoint"],
        "address": instance_result["address"],
        "database_name": instance_result["database_name"],
        "security_group_id": sg_result["security_group_id"],
        # Keep references to resources for dependencies
        "_security_group": sg_result["security_group"],
        "_subnet_group": subnet_group_result["subnet_group"],
        "_instance": instance_result["instance"]
    }
