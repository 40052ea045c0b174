"""Job model, queue and worker.

- model: job records, payloads and factories
- queue: priority queue of pending jobs
- steps: per-type adapter step sequences
- worker: dispatch loop with retry and cancellation
"""

from __future__ import annotations
