"""Release pipeline.

- model / checks: domain types and CI status normalization
- polling / engine: waiting and state machine primitives
- gh / notes: review platform and note generator backends
- changeset / diff_context / package / workarea: pipeline building blocks
- pipeline: the ordered release states
"""

from __future__ import annotations
