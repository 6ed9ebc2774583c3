"""
Payment Gateway Abstraction
=============================
Each gateway implements create_intent(), retrieve_intent(), create_refund()
and construct_event() (webhook authentication + parsing).
Registry pattern for gateway lookup by name; the instance used by the app is
built in the lifespan and kept on app.state.gateway.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from fastapi import Request

logger = logging.getLogger("mimis.gateway")


@dataclass
class IntentResult:
    """A gateway-side payment intent."""
    id: str
    status: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None          # minor units
    currency: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class RefundResult:
    id: str
    status: str


@dataclass
class GatewayEvent:
    """An authenticated webhook event."""
    id: str
    type: str
    object_id: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)


class BaseGateway:
    """Abstract gateway interface."""
    name: str = ""
    label: str = ""

    def create_intent(self, amount_minor: int, currency: str, metadata: Dict[str, str]) -> IntentResult:
        raise NotImplementedError

    def retrieve_intent(self, intent_id: str) -> IntentResult:
        raise NotImplementedError

    def create_refund(self, intent_id: str) -> RefundResult:
        raise NotImplementedError

    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> GatewayEvent:
        """Verify and parse a webhook body. Raises WebhookSignatureError."""
        raise NotImplementedError

    def close(self):
        pass


# ── Registry ──

_GATEWAYS: Dict[str, Type[BaseGateway]] = {}


def register_gateway(cls: Type[BaseGateway]) -> Type[BaseGateway]:
    _GATEWAYS[cls.name] = cls
    return cls


def get_gateway_class(name: str) -> Optional[Type[BaseGateway]]:
    return _GATEWAYS.get(name)


def get_all_gateway_names() -> List[str]:
    return list(_GATEWAYS.keys())


def build_gateway(name: str, **kwargs) -> BaseGateway:
    cls = get_gateway_class(name)
    if cls is None:
        raise ValueError(f"Unknown payment gateway: {name}")
    logger.info(f"Payment gateway: {name}")
    return cls(**kwargs)


def get_active_gateway(request: Request) -> BaseGateway:
    """FastAPI dependency: the gateway built by the application lifespan."""
    return request.app.state.gateway
