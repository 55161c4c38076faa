"""
Class decorators that turn repository Protocols into Temporal plumbing.

``temporal_activity_registration`` wraps each async protocol method of a
concrete repository as an activity named ``{prefix}.{method}``.
``temporal_workflow_proxy`` fills a proxy class with methods that call
those activities from workflow code, decoding results back into the
annotated return type.
"""

import functools
import inspect
import logging
from datetime import timedelta
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Optional,
    Type,
    TypeVar,
    get_type_hints,
)

from temporalio import activity, workflow
from temporalio.common import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_RETRY = RetryPolicy(maximum_attempts=1)


def _is_protocol(cls: type) -> bool:
    return bool(getattr(cls, "_is_protocol", False))


def _discover_protocol_methods(
    cls_hierarchy: Iterable[type],
) -> Dict[str, Callable[..., Any]]:
    """Public async methods declared on the Protocols in the hierarchy."""
    methods: Dict[str, Callable[..., Any]] = {}
    for base_class in cls_hierarchy:
        if base_class is object or not _is_protocol(base_class):
            continue
        for name, member in base_class.__dict__.items():
            if name.startswith("_") or name in methods:
                continue
            if inspect.iscoroutinefunction(member):
                methods[name] = member
    logger.debug(
        "Protocol methods discovered",
        extra={"methods": sorted(methods)},
    )
    return methods


def temporal_activity_registration(
    activity_prefix: str,
) -> Callable[[Type[T]], Type[T]]:
    """
    Register the protocol methods of a concrete repository as activities.

    Example:
        @temporal_activity_registration("catering.order_repo.minio")
        class TemporalMinioOrderRepository(MinioOrderRepository):
            pass

        # get_order -> "catering.order_repo.minio.get_order"
    """

    def decorator(cls: Type[T]) -> Type[T]:
        wrapped = []
        for name in _discover_protocol_methods(cls.__mro__):
            implementation = getattr(cls, name)

            def make_activity(method: Callable[..., Any], method_name: str):
                @functools.wraps(method)
                async def activity_method(*args: Any, **kwargs: Any) -> Any:
                    return await method(*args, **kwargs)

                activity_method.__qualname__ = f"{cls.__name__}.{method_name}"
                return activity_method

            setattr(
                cls,
                name,
                activity.defn(name=f"{activity_prefix}.{name}")(
                    make_activity(implementation, name)
                ),
            )
            wrapped.append(name)

        logger.info(
            "Temporal activities registered",
            extra={
                "repository": cls.__name__,
                "activity_prefix": activity_prefix,
                "wrapped_methods": wrapped,
            },
        )
        return cls

    return decorator


def temporal_workflow_proxy(
    activity_base: str,
    default_timeout_seconds: int = 30,
    no_retry_methods: Optional[Iterable[str]] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Implement every protocol method of ``cls`` as an activity call.

    Args:
        activity_base: Activity name prefix used at registration
        default_timeout_seconds: start-to-close timeout per call
        no_retry_methods: Methods that must run at most once (calls with
            external side effects that the caller handles failures of)
    """

    def decorator(cls: Type[T]) -> Type[T]:
        single_attempt = set(no_retry_methods or ())

        for name, declared in _discover_protocol_methods(cls.__mro__).items():
            return_type = get_type_hints(declared).get("return", Any)
            if return_type is type(None):
                return_type = None

            def make_proxy(
                method_name: str, result_type: Any, declared_method: Any
            ) -> Callable[..., Any]:
                activity_name = f"{activity_base}.{method_name}"

                @functools.wraps(declared_method)
                async def proxy_method(self: Any, *args: Any, **kwargs: Any) -> Any:
                    if kwargs:
                        raise ValueError(
                            f"kwargs not supported in workflow proxy for "
                            f"{method_name}. Use positional args."
                        )
                    workflow.logger.debug(
                        "Calling activity",
                        extra={"activity_name": activity_name},
                    )
                    return await workflow.execute_activity(
                        activity_name,
                        args=list(args),
                        start_to_close_timeout=timedelta(
                            seconds=default_timeout_seconds
                        ),
                        retry_policy=(
                            NO_RETRY if method_name in single_attempt else None
                        ),
                        result_type=result_type,
                    )

                return proxy_method

            setattr(cls, name, make_proxy(name, return_type, declared))

        return cls

    return decorator
