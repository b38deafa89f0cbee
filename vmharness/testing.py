"""The narrow testing capability the harness reports through.

Harness entry points never import a test framework directly; they receive
something with ``fail``, ``fail_now``, ``logf`` and ``name``. PytestT is the
adapter for pytest test functions:

    async def test_vmsingle(request, harness_factory):
        t = PytestT.from_request(request)
        harness = harness_factory(t=t)
        await harness.wait_until_operational("VMSingle", "vm", "overwatch")
        t.verify()
"""

from __future__ import annotations

from typing import Any, NoReturn, Protocol, runtime_checkable

import pytest
from loguru import logger


@runtime_checkable
class TestingT(Protocol):
    def fail(self, message: str) -> None:
        """Record a failure and keep going."""
        ...

    def fail_now(self, message: str) -> NoReturn:
        """Record a failure and stop the current test."""
        ...

    def logf(self, fmt: str, *args: Any) -> None: ...

    def name(self) -> str: ...


class PytestT:
    def __init__(self, test_name: str) -> None:
        self._name = test_name
        self._failures: list[str] = []
        self._log = logger.bind(component="test", test=test_name)

    @classmethod
    def from_request(cls, request: pytest.FixtureRequest) -> PytestT:
        return cls(request.node.nodeid)

    @property
    def failures(self) -> tuple[str, ...]:
        return tuple(self._failures)

    @property
    def failed(self) -> bool:
        return bool(self._failures)

    def fail(self, message: str) -> None:
        self._failures.append(message)
        self._log.error("{message}", message=message)

    def fail_now(self, message: str) -> NoReturn:
        self.fail(message)
        pytest.fail(message, pytrace=False)

    def logf(self, fmt: str, *args: Any) -> None:
        self._log.info("{message}", message=fmt % args if args else fmt)

    def name(self) -> str:
        return self._name

    def verify(self) -> None:
        """Fail the test if any soft failure was recorded."""
        if self._failures:
            pytest.fail("\n".join(self._failures), pytrace=False)
