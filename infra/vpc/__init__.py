"""
VPC Module
Isolated network with public and private subnets replicated across zones
"""

from .functions import create_network

__all__ = ["create_network"]
