"""Unit tests for BaseService transaction handling and operation metrics."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from lessonflow.core.exceptions import NotFoundException, ServiceException
from lessonflow.services.base import BaseService


class _SampleService(BaseService):
    @BaseService.measure_operation("succeed")
    def succeed(self):
        return "ok"

    @BaseService.measure_operation("fail")
    def fail(self):
        raise NotFoundException("missing")

    @BaseService.measure_operation("async_succeed")
    async def async_succeed(self):
        return "async-ok"


class TestTransaction:
    def test_commits_on_success(self):
        db = MagicMock()
        service = _SampleService(db)

        with service.transaction():
            pass

        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_database_errors_become_service_exceptions(self):
        db = MagicMock()
        service = _SampleService(db)

        with pytest.raises(ServiceException):
            with service.transaction():
                raise OperationalError("UPDATE lessons", {}, Exception("locked"))

        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_domain_errors_propagate_unchanged(self):
        db = MagicMock()
        service = _SampleService(db)

        with pytest.raises(NotFoundException):
            with service.transaction():
                raise NotFoundException("missing")

        db.rollback.assert_called_once()


class TestMeasureOperation:
    def test_counts_success_and_failure(self):
        service = _SampleService(MagicMock())

        assert service.succeed() == "ok"
        with pytest.raises(NotFoundException):
            service.fail()

        metrics = service.get_metrics()
        assert metrics["succeed"]["success_count"] >= 1
        assert metrics["fail"]["failure_count"] >= 1

    @pytest.mark.asyncio
    async def test_wraps_coroutines(self):
        service = _SampleService(MagicMock())

        assert await service.async_succeed() == "async-ok"
        assert service.get_metrics()["async_succeed"]["count"] >= 1
