"""
Tests for repository protocol checks and stored-document validation.
"""

from unittest.mock import MagicMock

import pytest

from catering.domain import Order
from catering.repos.memory.gateway import MemoryPaymentGatewayRepository
from catering.repos.memory.order import MemoryOrderRepository
from catering.repositories import OrderRepository
from catering.tests.factories import OrderFactory
from catering.usecase import CancelOrderUseCase
from catering.validation import (
    DomainValidationError,
    RepositoryValidationError,
    ensure_order_repository,
    ensure_payment_gateway_repository,
    validate_domain_model,
)


class IncompleteOrderRepository:
    async def get_order(self, order_id: str):
        return None


def test_memory_repositories_satisfy_protocols() -> None:
    repo = MemoryOrderRepository()
    assert ensure_order_repository(repo) is repo
    gateway = MemoryPaymentGatewayRepository()
    assert ensure_payment_gateway_repository(gateway) is gateway


def test_mock_with_protocol_spec_is_accepted() -> None:
    mock_repo = MagicMock(spec=OrderRepository)
    assert ensure_order_repository(mock_repo) is mock_repo


def test_incomplete_repository_is_rejected() -> None:
    with pytest.raises(RepositoryValidationError, match="OrderRepository"):
        ensure_order_repository(IncompleteOrderRepository())


def test_use_case_refuses_swapped_repositories() -> None:
    with pytest.raises(RepositoryValidationError):
        CancelOrderUseCase(
            order_repo=MemoryPaymentGatewayRepository(),
            gateway_repo=MemoryPaymentGatewayRepository(),
        )


def test_stored_document_round_trips() -> None:
    order = OrderFactory.build()
    data = order.model_dump(mode="json")
    assert validate_domain_model(data, Order) == order


def test_corrupt_document_raises_domain_error() -> None:
    data = OrderFactory.build().model_dump(mode="json")
    data["items"] = []

    with pytest.raises(DomainValidationError, match="Order"):
        validate_domain_model(data, Order)


def test_orphaned_items_are_rejected() -> None:
    data = OrderFactory.build().model_dump(mode="json")
    data["items"][0]["payment_id"] = "imp_unknown"

    with pytest.raises(DomainValidationError, match="unknown payment groups"):
        validate_domain_model(data, Order)
