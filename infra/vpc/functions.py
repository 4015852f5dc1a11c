"""
VPC Module Functions
Creates the VPC, public and private subnets per availability zone,
and the gateways and route tables that serve them
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any

from infra.specs import NetworkSpec, StackConfigError, SubnetPlan


def create_vpc(name: str, cidr: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create VPC with DNS settings

    Args:
        name: VPC name
        cidr: VPC CIDR block
        tags: Additional tags

    Returns:
        Dict with vpc resource and outputs
    """
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        name,
        cidr_block=cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={
            **tags,
            "Name": name,
            "Module": "vpc"
        }
    )

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block
    }


def create_internet_gateway(name: str, vpc_id: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """Create Internet Gateway for VPC"""
    tags = tags or {}

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-igw",
            "Module": "vpc"
        }
    )

    return {
        "igw": igw,
        "igw_id": igw.id
    }


def create_subnets(vpc_id: pulumi.Output[str], plans: List[SubnetPlan],
                   availability_zones: List[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one subnet per plan entry

    Public subnets get public IPs and the external load balancer role tag,
    private subnets get the internal one.

    Args:
        vpc_id: VPC ID
        plans: Subnet layout from NetworkSpec.subnet_plan()
        availability_zones: Zone names, indexed by SubnetPlan.zone_index
        tags: Additional tags

    Returns:
        Dict with public and private subnet resources in zone order
    """
    tags = tags or {}

    public_subnets = []
    private_subnets = []
    zones = [{"public": [], "private": []} for _ in availability_zones]
    for plan in plans:
        public = plan.visibility == "Public"
        subnet = aws.ec2.Subnet(
            plan.name,
            vpc_id=vpc_id,
            cidr_block=plan.cidr_block,
            availability_zone=availability_zones[plan.zone_index],
            map_public_ip_on_launch=public,
            tags={
                **tags,
                "Name": plan.name,
                "Type": plan.visibility.lower(),
                "kubernetes.io/role/elb" if public else "kubernetes.io/role/internal-elb": "1",
                "Module": "vpc"
            }
        )
        (public_subnets if public else private_subnets).append(subnet)
        zones[plan.zone_index]["public" if public else "private"].append(subnet.id)

    return {
        "public_subnets": public_subnets,
        "private_subnets": private_subnets,
        "public_subnet_ids": [subnet.id for subnet in public_subnets],
        "private_subnet_ids": [subnet.id for subnet in private_subnets],
        "zones": zones
    }


def create_public_route_table(name: str, vpc_id: pulumi.Output[str], igw_id: pulumi.Output[str],
                              subnet_ids: List[pulumi.Output[str]], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create route table for public subnets

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        igw_id: Internet Gateway ID
        subnet_ids: List of subnet IDs to associate
        tags: Additional tags

    Returns:
        Dict with route table resources and outputs
    """
    tags = tags or {}

    route_table = aws.ec2.RouteTable(
        f"{name}-public-rt",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-public-rt",
            "Module": "vpc"
        }
    )

    route = aws.ec2.Route(
        f"{name}-public-route",
        route_table_id=route_table.id,
        destination_cidr_block="0.0.0.0/0",
        gateway_id=igw_id
    )

    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        associations.append(aws.ec2.RouteTableAssociation(
            f"{name}-public-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        ))

    return {
        "route_table": route_table,
        "route": route,
        "associations": associations,
        "route_table_id": route_table.id
    }


def create_private_routing(name: str, vpc_id: pulumi.Output[str], zones: List[Dict[str, List]],
                           tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one NAT gateway per zone and route that zone's private subnets through it

    Args:
        name: Resource name prefix
        vpc_id: VPC ID
        zones: Per-zone subnet IDs, as returned by create_subnets
        tags: Additional tags

    Returns:
        Dict with NAT gateways and private route tables
    """
    tags = tags or {}

    nat_gateways = []
    route_tables = []
    for i, zone in enumerate(zones):
        if not zone["public"] or not zone["private"]:
            continue

        eip = aws.ec2.Eip(
            f"{name}-nat-eip-{i+1}",
            domain="vpc",
            tags={
                **tags,
                "Name": f"{name}-nat-eip-{i+1}",
                "Module": "vpc"
            }
        )

        nat_gateway = aws.ec2.NatGateway(
            f"{name}-nat-{i+1}",
            allocation_id=eip.id,
            subnet_id=zone["public"][0],
            tags={
                **tags,
                "Name": f"{name}-nat-{i+1}",
                "Module": "vpc"
            }
        )
        nat_gateways.append(nat_gateway)

        route_table = aws.ec2.RouteTable(
            f"{name}-private-rt-{i+1}",
            vpc_id=vpc_id,
            routes=[aws.ec2.RouteTableRouteArgs(
                cidr_block="0.0.0.0/0",
                nat_gateway_id=nat_gateway.id
            )],
            tags={
                **tags,
                "Name": f"{name}-private-rt-{i+1}",
                "Module": "vpc"
            }
        )
        route_tables.append(route_table)

        for j, subnet_id in enumerate(zone["private"]):
            aws.ec2.RouteTableAssociation(
                f"{name}-private-rta-{i+1}-{j+1}",
                subnet_id=subnet_id,
                route_table_id=route_table.id
            )

    return {
        "nat_gateways": nat_gateways,
        "route_tables": route_tables
    }


def create_network(spec: NetworkSpec, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete VPC infrastructure for EKS

    Args:
        spec: Network description
        tags: Additional tags for all resources

    Returns:
        Dict with all VPC resources and outputs
    """
    tags = tags or {}
    spec.validate()
    plans = spec.subnet_plan()

    azs = aws.get_availability_zones(state="available")
    if len(azs.names) < spec.zone_count:
        raise StackConfigError(
            f"Network {spec.name} wants {spec.zone_count} zones but only "
            f"{len(azs.names)} are available")
    zones = list(azs.names[:spec.zone_count])

    vpc_result = create_vpc(spec.name, spec.cidr_block, tags)
    igw_result = create_internet_gateway(spec.name, vpc_result["vpc_id"], tags)
    subnets_result = create_subnets(vpc_result["vpc_id"], plans, zones, tags)

    public_rt_result = create_public_route_table(
        spec.name,
        vpc_result["vpc_id"],
        igw_result["igw_id"],
        subnets_result["public_subnet_ids"],
        tags
    )

    private_result = create_private_routing(
        spec.name,
        vpc_result["vpc_id"],
        subnets_result["zones"],
        tags
    )

    pulumi.log.info(
        f"Network {spec.name}: {spec.cidr_block} across {', '.join(zones)}, "
        f"{len(plans)} subnets")

    return {
        "vpc_id": vpc_result["vpc_id"],
        "vpc_cidr_block": vpc_result["vpc_cidr_block"],
        "public_subnet_ids": subnets_result["public_subnet_ids"],
        "private_subnet_ids": subnets_result["private_subnet_ids"],
        "availability_zones": zones,
        "subnet_plan": plans,
        # Keep references to all resources for dependencies
        "_vpc": vpc_result["vpc"],
        "_igw": igw_result["igw"],
        "_public_subnets": subnets_result["public_subnets"],
        "_private_subnets": subnets_result["private_subnets"],
        "_public_route_table": public_rt_result["route_table"],
        "_nat_gateways": private_result["nat_gateways"],
        "_private_route_tables": private_result["route_tables"]
    }
