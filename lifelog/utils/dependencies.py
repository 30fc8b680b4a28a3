# lifelog/utils/dependencies.py
from typing import Any, Callable, Dict, Type, TypeVar, cast

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from lifelog.db.session import get_db

# Type variable for service classes
T = TypeVar("T")

# Global registry of service factories
_service_registry: Dict[Type[Any], Callable[..., Any]] = {}


def register_service(service_class: Type[T], factory: Callable[..., T]) -> None:
    """
    Register a service factory function.

    Args:
        service_class: The class of the service
        factory: Function that creates an instance of the service from a session
    """
    _service_registry[service_class] = factory


def get_service(service_class: Type[T]) -> Callable[..., T]:
    """
    Get a dependency provider for a service.

    The factory is looked up when the request is served, so services may be
    registered after the routes are declared. Unregistered services are
    built with their class called on the session.

    Args:
        service_class: The class of the service to provide

    Returns:
        A FastAPI dependency that provides one service instance per request
    """

    async def _get_service(request: Request, db: Session = Depends(get_db)) -> T:
        # Check if service is already in request state
        service_key = f"service:{service_class.__name__}"
        if hasattr(request.state, service_key):
            return cast(T, getattr(request.state, service_key))

        factory = _service_registry.get(service_class, service_class)
        service = factory(db)

        # Cache in request state
        setattr(request.state, service_key, service)

        return service

    return _get_service
