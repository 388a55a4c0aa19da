"""
Execution primitives: envelopes, the consumer runtime, quota admission,
dead-letter storage and the resilience helpers around upstream calls.
"""

from taproom.execution.async_batch import AsyncBatchExecutor, AsyncBatchResult, Settled, run_bounded
from taproom.execution.circuit_breaker import CircuitState, SlowCallBreaker
from taproom.execution.dlq import DeadLetterStore
from taproom.execution.envelope import Envelope, Outcome, OutcomeKind
from taproom.execution.models import DeadLetterRecord, DeadLetterStatus
from taproom.execution.quota import Admission, QuotaController, QuotaLimits, QuotaStatus
from taproom.execution.retry import ExponentialBackoff, RetryContext
from taproom.execution.runtime import ConsumerRuntime, MessageConsumer, RunReport

__all__ = [
    # Envelopes
    "Envelope",
    "Outcome",
    "OutcomeKind",
    # Runtime
    "ConsumerRuntime",
    "MessageConsumer",
    "RunReport",
    # Concurrency
    "AsyncBatchExecutor",
    "AsyncBatchResult",
    "Settled",
    "run_bounded",
    # Resilience
    "CircuitState",
    "SlowCallBreaker",
    "ExponentialBackoff",
    "RetryContext",
    # Quota
    "Admission",
    "QuotaController",
    "QuotaLimits",
    "QuotaStatus",
    # Dead letters
    "DeadLetterRecord",
    "DeadLetterStatus",
    "DeadLetterStore",
]
