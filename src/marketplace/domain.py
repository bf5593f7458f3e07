"""Marketplace checkout context: payment orchestration and order lifecycle.

Splits multi-seller carts into per-seller orders, computes value-for-value
revenue shares, generates and tracks one invoice per payee, and derives order
status from the append-only event log shared with other marketplace clients.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
