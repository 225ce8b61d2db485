"""
Transport gateways for deskline.
Controllers depend on BaseGateway; HttpGateway is the httpx implementation.
"""
from deskline.gateway.base import BaseGateway
from deskline.gateway.http import HttpGateway
from deskline.gateway.single_flight import FlightHandle, SingleFlight

__all__ = [
    "BaseGateway",
    "HttpGateway",
    "FlightHandle",
    "SingleFlight",
]
