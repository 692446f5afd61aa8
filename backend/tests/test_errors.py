"""
Driver errors translated at the repository boundary.
"""

import pytest
from bson.errors import InvalidDocument
from pymongo.errors import ServerSelectionTimeoutError
from sqlalchemy.exc import OperationalError

from paperhub.database.errors import RepositoryFailure, ValidationError
from paperhub.database.mongo.utils import mongo_errors
from paperhub.database.postgres.utils import sql_errors


class TestRepositoryFailure:
    def test_message_names_only_the_operation(self):
        cause = RuntimeError("connection to 10.0.0.5:5432 refused")

        error = RepositoryFailure("list papers", cause)

        assert error.message == "Failed to list papers"
        assert error.cause is cause
        assert error.status_code == 500


class TestSqlErrors:
    def test_driver_error_becomes_failure(self, caplog):
        """Should keep the SQL out of the message and put it in the log."""

        @sql_errors("list papers")
        def broken():
            raise OperationalError("SELECT * FROM papers", {}, Exception("disk I/O error"))

        with pytest.raises(RepositoryFailure) as excinfo:
            broken()

        assert excinfo.value.message == "Failed to list papers"
        assert isinstance(excinfo.value.__cause__, OperationalError)
        assert "disk I/O error" in caplog.text

    def test_overflow_is_a_validation_error(self):
        @sql_errors("create paper")
        def overflowing():
            raise OverflowError("Python int too large to convert to SQLite INTEGER")

        with pytest.raises(ValidationError):
            overflowing()


class TestMongoErrors:
    def test_driver_error_becomes_failure(self, caplog):
        @mongo_errors("list papers")
        def broken():
            raise ServerSelectionTimeoutError("mongo-0.internal:27017: timed out")

        with pytest.raises(RepositoryFailure) as excinfo:
            broken()

        assert "mongo-0.internal" not in excinfo.value.message
        assert "mongo-0.internal" in caplog.text

    @pytest.mark.parametrize(
        "error",
        [OverflowError("MongoDB can only handle up to 8-byte ints"), InvalidDocument("cannot encode object")],
    )
    def test_unencodable_value_is_a_validation_error(self, error):
        @mongo_errors("create paper")
        def unencodable():
            raise error

        with pytest.raises(ValidationError):
            unencodable()
