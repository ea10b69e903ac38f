"""
Dependency injection container.

Capability handles and the workflow built from them are created lazily from
settings and injected into the orchestrator, so tests can register
substitutes before anything touches the network.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any

from ..observability.logging import get_logger
from .settings import CapabilityEndpoint, Settings, get_settings

logger = get_logger(__name__)


class Container:
    """Dependency injection container with async lifecycle management."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Any] = {}
        self._singletons: dict[str, Any] = {}

    def register_factory(self, name: str, factory: Any) -> None:
        """Register a factory function taking the container."""
        self._factories[name] = factory
        self._services.pop(name, None)

    def register_singleton(self, name: str, instance: Any) -> None:
        self._singletons[name] = instance

    def get(self, name: str, default: Any = None) -> Any:
        """Get a service by name, instantiating it from its factory on first use."""
        if name in self._singletons:
            return self._singletons[name]

        if name in self._services:
            return self._services[name]

        if name in self._factories:
            instance = self._factories[name](self)
            self._services[name] = instance
            return instance

        return default

    def get_orchestrator(self):
        return self.get("orchestrator")

    async def cleanup(self) -> None:
        """Close every instantiated service that holds resources."""
        for name, service in [*self._services.items(), *self._singletons.items()]:
            closer = getattr(service, "aclose", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.warning(f"Error cleaning up {name}: {e}")

        self._services.clear()

    @asynccontextmanager
    async def lifespan(self):
        try:
            yield self
        finally:
            await self.cleanup()


def _capability_from_endpoint(c: Container, name: str, endpoint: CapabilityEndpoint, local):
    if endpoint.kind == "http":
        from ..capabilities.http import HttpCapability

        if not endpoint.url:
            raise ValueError(f"Capability '{name}' is configured as http but has no url")
        return HttpCapability(
            name,
            endpoint.url,
            timeout=endpoint.timeout,
            result_path=endpoint.result_path,
            headers=endpoint.headers,
            http_client=c.get("http_client"),
        )
    if local is None:
        raise ValueError(f"Capability '{name}' has no in-memory implementation")
    return local()


def setup_container(settings: Settings | None = None) -> Container:
    """Setup container with default service factories."""
    container = Container(settings)

    def _http_client_factory(c: Container):
        import httpx

        return httpx.AsyncClient(
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
        )

    def _record_store_factory(c: Container):
        from ..capabilities.local import InMemoryRecordStore

        return _capability_from_endpoint(
            c,
            "record_store",
            c.settings.capabilities.record_store,
            lambda: InMemoryRecordStore(
                "record_store",
                key_field=c.settings.workflow.lookup_key,
                records=c.settings.records,
            ),
        )

    def _classifier_factory(c: Container):
        return _capability_from_endpoint(
            c, "classifier", c.settings.capabilities.classifier, None
        )

    def _notifier_factory(c: Container):
        from ..capabilities.local import InMemoryNotificationChannel

        notification = c.settings.notification
        return _capability_from_endpoint(
            c,
            "notifier",
            c.settings.capabilities.notifier,
            lambda: InMemoryNotificationChannel(
                "notifier",
                topic_name=notification.topic_name,
                display_name=notification.display_name,
                destination=notification.email,
            ),
        )

    def _workflow_factory(c: Container):
        from ..core.workflow import build_triage_workflow

        workflow = c.settings.workflow
        return build_triage_workflow(
            record_store=c.get("record_store"),
            classifier=c.get("classifier"),
            notifier=c.get("notifier"),
            name=workflow.name,
            branch_field=workflow.branch_field,
            branch_value=workflow.branch_value,
        )

    def _orchestrator_factory(c: Container):
        from ..core.orchestrator import Orchestrator

        return Orchestrator.from_container(c)

    container.register_factory("http_client", _http_client_factory)
    container.register_factory("record_store", _record_store_factory)
    container.register_factory("classifier", _classifier_factory)
    container.register_factory("notifier", _notifier_factory)
    container.register_factory("workflow", _workflow_factory)
    container.register_factory("orchestrator", _orchestrator_factory)

    return container


@lru_cache
def get_container() -> Container:
    """Get cached container instance."""
    return setup_container()
