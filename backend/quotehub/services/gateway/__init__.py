# backend/quotehub/services/gateway/__init__.py
from quotehub.services.gateway.service import GatewayService

__all__ = ["GatewayService"]
