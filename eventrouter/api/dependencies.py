"""Accessors for the per-process instances held on app.state."""
from fastapi import Request
from ..event_models import CloudEventValidator
from ..routing.table import RoutingTable
from ..transform.store import RuleStore
from ..transform.transformer import EventTransformer


def get_routing_table(request: Request) -> RoutingTable:
    return request.app.state.routing_table


def get_rule_store(request: Request) -> RuleStore:
    return request.app.state.rule_store


def get_transformer(request: Request) -> EventTransformer:
    return request.app.state.transformer


def get_validator(request: Request) -> CloudEventValidator:
    return request.app.state.event_validator
