"""
sentiflow - synchronous record triage workflow.

Each request runs a short workflow: fetch a record by key, classify its
sentiment with a generative model, and publish a notification when the
classification is negative. The whole execution is bounded by a single
deadline and returns either the final payload or a structured failure.

Quick Start:
    >>> from sentiflow import Orchestrator, build_triage_workflow
    >>> from sentiflow.capabilities import (
    ...     CallableCapability, InMemoryNotificationChannel, InMemoryRecordStore,
    ... )
    >>>
    >>> store = InMemoryRecordStore(records=[{"age": "34", "text": "I hate this"}])
    >>> classifier = CallableCapability("classifier", lambda p: {**p, "emotion": "NEGATIVE"})
    >>> notifier = InMemoryNotificationChannel()
    >>>
    >>> orchestrator = Orchestrator(build_triage_workflow(store, classifier, notifier))
    >>> result = await orchestrator.start_execution({"age": "34"})
    >>> result.status, len(notifier.messages)
    (<ExecutionStatus.SUCCEEDED: 'SUCCEEDED'>, 1)

API Server:
    $ python -m sentiflow.main
    $ curl -X POST http://localhost:8000/ -d '{"age": "34"}'

Configuration:
    Environment variables with the SENTIFLOW_ prefix, e.g.
    - SENTIFLOW_WORKFLOW__TIMEOUT_SECONDS=900
    - SENTIFLOW_CAPABILITIES__CLASSIFIER__URL=http://classifier:8080/invoke
    - SENTIFLOW_NOTIFICATION__EMAIL=oncall@example.com
"""

__version__ = "0.1.0"

from .config.settings import Settings
from .core.execution import ExecutionResult, ExecutionStatus, FailureCause
from .core.orchestrator import Orchestrator
from .core.workflow import WorkflowDefinition, build_triage_workflow

__all__ = [
    "Orchestrator",
    "WorkflowDefinition",
    "build_triage_workflow",
    "ExecutionResult",
    "ExecutionStatus",
    "FailureCause",
    "Settings",
]
