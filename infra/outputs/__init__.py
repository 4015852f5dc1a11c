"""
Outputs Module
"""

from .functions import create_kubeconfig, export_outputs, render_kubeconfig

__all__ = ["create_kubeconfig", "export_outputs", "render_kubeconfig"]
