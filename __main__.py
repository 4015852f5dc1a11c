"""
EKS platform stack
VPC across three zones, EKS with on-demand and spot node pools, PostgreSQL
"""
from infra.config import get_config
from infra.stack import deploy

deploy(get_config())
