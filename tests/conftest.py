import pytest


@pytest.fixture(scope="session", autouse=True)
def close_database_connections():
    """Ensure all database connections are properly closed after tests.

    This fixture runs at the end of the test session to prevent the
    'database is being accessed by other users' error during teardown.
    """
    yield
    from django.db import connections

    for conn in connections.all():
        conn.close()
