"""
Transactional Coordinator - one atomic unit per multi-step operation.

State change, derived counters and the audit entry of an operation are
written inside a single unit. Any failure rolls back every write of the
unit and the caller receives exactly one error. External fan-out (mail)
never happens inside a unit.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from .exceptions import CsrmsError, DependencyFailure
from .ports import Store, Transaction

logger = logging.getLogger(__name__)


@dataclass
class TransactionalCoordinator:
    """Opens units on the store and normalises their failures."""

    store: Store

    @contextmanager
    def unit(self, name: str) -> Iterator[Transaction]:
        """
        Run the block inside one store transaction.

        Domain errors are re-raised unchanged after rollback. Any other
        error (store unreachable, statement timeout, ...) is surfaced as
        DependencyFailure. Nothing is retried.

        Args:
            name: Operation name used in log messages
        """
        try:
            with self.store.transaction() as tx:
                yield tx
        except CsrmsError as e:
            logger.info("Unit %s rolled back: %s", name, e.__class__.__name__)
            raise
        except Exception as e:
            logger.exception("Unit %s failed", name)
            raise DependencyFailure(f"{name} could not be completed") from e
