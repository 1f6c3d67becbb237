"""Mesh components and the configuration that drives them."""

from __future__ import annotations

from .config import MeshConfig, load_mesh_config
from .egressgateway import EgressGatewayReconciler

__all__ = ["EgressGatewayReconciler", "MeshConfig", "load_mesh_config"]
