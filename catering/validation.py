"""
Runtime validation at architectural boundaries.

- Repository implementations are checked against their Protocols
  (``@runtime_checkable``) when a use case is constructed.
- Stored documents are validated against domain models when they are
  loaded back, so a corrupt object surfaces as a DomainValidationError
  instead of a half-built order.
"""

import logging
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ValidationError

from catering.repositories import OrderRepository, PaymentGatewayRepository

logger = logging.getLogger(__name__)

P = TypeVar("P")
M = TypeVar("M", bound=BaseModel)


class RepositoryValidationError(Exception):
    """Raised when repository contract validation fails"""

    pass


class DomainValidationError(Exception):
    """Raised when domain model validation fails"""

    pass


def validate_repository_protocol(
    repository: object, protocol: Type[P]
) -> None:
    """
    Validate that a repository implementation satisfies a protocol contract.

    Raises:
        RepositoryValidationError: If validation fails
    """
    logger.debug(
        "Validating repository protocol",
        extra={
            "repository_type": type(repository).__name__,
            "protocol_name": protocol.__name__,
        },
    )

    if not isinstance(repository, protocol):
        logger.error(
            "Repository protocol validation failed",
            extra={
                "repository_type": type(repository).__name__,
                "protocol_name": protocol.__name__,
            },
        )
        raise RepositoryValidationError(
            f"Repository {type(repository).__name__} does not implement "
            f"{protocol.__name__} protocol. Missing or incorrect methods."
        )


def ensure_repository_protocol(repository: object, protocol: Type[P]) -> P:
    """Validate and return a repository typed as the protocol."""
    validate_repository_protocol(repository, protocol)
    return repository  # type: ignore[return-value]


def ensure_order_repository(repository: object) -> OrderRepository:
    return ensure_repository_protocol(repository, OrderRepository)  # type: ignore[type-abstract]


def ensure_payment_gateway_repository(
    repository: object,
) -> PaymentGatewayRepository:
    return ensure_repository_protocol(
        repository, PaymentGatewayRepository  # type: ignore[type-abstract]
    )


def validate_domain_model(data: Dict[str, Any], model_class: Type[M]) -> M:
    """
    Validate and convert dictionary data to a domain model.

    Raises:
        DomainValidationError: If validation fails
    """
    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        logger.error(
            "Domain model validation failed",
            extra={
                "model_class": model_class.__name__,
                "validation_errors": e.errors(),
            },
        )
        raise DomainValidationError(
            f"Domain model validation failed for {model_class.__name__}: {e}"
        ) from e
